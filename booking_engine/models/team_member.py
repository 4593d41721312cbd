from sqlalchemy import Boolean, Column, ForeignKey, Integer
from sqlalchemy.orm import relationship

from booking_engine.models.base import Base


class TeamMember(Base):
    """
    A user assigned to a team-scheduled EventType.

    Round-robin order is priority ascending, then id (insertion order).
    """

    __tablename__ = "team_members"

    id = Column(Integer, primary_key=True, index=True)

    event_type_id = Column(
        Integer,
        ForeignKey("event_types.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    priority = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    event_type = relationship("EventType", backref="team_members")
    user = relationship("User")
