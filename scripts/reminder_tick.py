# scripts/reminder_tick.py
"""
Reminder "tick" script.

Run it every few minutes (cron, a Kubernetes CronJob, ...):

    python -m scripts.reminder_tick --limit 200

Flow:
1. Build the Twilio SMS client from settings.
2. Send every pending reminder whose time has come.
3. Print how many went out.
"""

from __future__ import annotations

import argparse

from booking_engine.db.session import SessionLocal
from booking_engine.services.reminder_service import send_due_reminders
from booking_engine.services.twilio_client import get_twilio_client


def run_once(limit: int | None = None, sms_client=None) -> int:
    if sms_client is None:
        try:
            sms_client = get_twilio_client()
        except RuntimeError as exc:
            print(f"[reminder_tick] {exc}")
            return 0

    db = SessionLocal()
    try:
        sent = send_due_reminders(db, sms_client, limit=limit)
        print(f"[reminder_tick] Sent {sent} reminder(s)")
        return sent
    finally:
        db.close()


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Optional max number of reminders to process in this tick",
    )
    args = parser.parse_args()
    run_once(limit=args.limit)


if __name__ == "__main__":
    main()
