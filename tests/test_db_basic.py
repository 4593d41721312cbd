# tests/test_db_basic.py
from sqlalchemy import text
from sqlalchemy.orm import Session

from booking_engine.db.session import engine, SessionLocal
from booking_engine.models import Base, User


def test_db_can_create_schema():
    # Ensure metadata can create tables
    Base.metadata.create_all(bind=engine)

    # Simple connectivity test
    with engine.connect() as conn:
        result = conn.execute(text("SELECT 1"))
        assert result.scalar() == 1


def test_create_and_read_user():
    # Make sure tables exist
    Base.metadata.create_all(bind=engine)

    db: Session = SessionLocal()
    try:
        # Ensure a clean slate for this test to avoid UNIQUE constraint conflicts
        Base.metadata.drop_all(bind=engine)
        Base.metadata.create_all(bind=engine)

        user = User(
            name="Test Host",
            email="test@example.com",
            phone="+123456789",
            timezone="Europe/Berlin",
        )
        db.add(user)
        db.commit()
        db.refresh(user)

        assert user.id is not None

        # fetch back
        fetched = db.query(User).filter_by(email="test@example.com").first()
        assert fetched is not None
        assert fetched.name == "Test Host"
        assert fetched.timezone == "Europe/Berlin"
    finally:
        db.close()
