# scripts/seed_demo.py
"""
Seed a demo host + event type and print the slots it offers.

Handy for poking at the API locally:

    python -m scripts.seed_demo --timezone Europe/Berlin --days 3

Flow:
1. Create (or reuse) a host with Mon-Fri 09:00-17:00 availability.
2. Create (or reuse) a 30 minute event type owned by that host.
3. Print the offered slots for the next N days in the invitee's timezone.
"""

from __future__ import annotations

import argparse
from datetime import datetime, time, timezone

from booking_engine.db.session import SessionLocal, engine
from booking_engine.models import Base, EventType, User
from booking_engine.services.availability_service import replace_weekly_availability
from booking_engine.services.slot_service import get_available_slots


def seed(host_timezone: str) -> int:
    db = SessionLocal()
    try:
        host = db.query(User).filter_by(email="demo-host@example.com").first()
        if not host:
            host = User(name="Demo Host", email="demo-host@example.com", timezone=host_timezone)
            db.add(host)
            db.commit()
            db.refresh(host)

        # 1..5 = Monday..Friday
        replace_weekly_availability(
            db,
            user_id=host.id,
            windows=[(dow, time(9), time(17)) for dow in range(1, 6)],
        )

        event_type = db.query(EventType).filter_by(owner_id=host.id, slug="demo").first()
        if not event_type:
            event_type = EventType(
                owner_id=host.id,
                title="Demo call",
                slug="demo",
                duration_minutes=30,
                buffer_after_minutes=10,
                allows_recurring=True,
            )
            db.add(event_type)
            db.commit()
            db.refresh(event_type)

        print(f"[seed_demo] host_id={host.id} event_type_id={event_type.id}")
        return event_type.id
    finally:
        db.close()


def print_slots(event_type_id: int, days: int, invitee_timezone: str) -> None:
    db = SessionLocal()
    try:
        slots = get_available_slots(
            db,
            event_type_id,
            from_date=datetime.now(timezone.utc).date(),
            days_ahead=days,
            invitee_timezone=invitee_timezone,
        )
        for day, day_slots in slots.items():
            times = ", ".join(s.start.strftime("%H:%M") for s in day_slots)
            print(f"{day.isoformat()}: {times}")
    finally:
        db.close()


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument(
        "--timezone",
        default="UTC",
        help="Host timezone (IANA name)",
    )
    parser.add_argument(
        "--invitee-timezone",
        default=None,
        help="Timezone to print slots in (defaults to the host's)",
    )
    parser.add_argument(
        "--days",
        type=int,
        default=7,
        help="How many days ahead to list",
    )
    args = parser.parse_args()

    Base.metadata.create_all(bind=engine)
    event_type_id = seed(args.timezone)
    print_slots(event_type_id, args.days, args.invitee_timezone or args.timezone)


if __name__ == "__main__":
    main()
