from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime
from booking_engine.models.base import Base


class User(Base):
    """A host or team member whose time can be booked."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    phone = Column(String(50), nullable=True)

    # IANA name; availability windows are wall-clock in this zone
    timezone = Column(String(64), nullable=False, default="UTC")

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
