"""Re-send review outcome notifications that were never stored.

Run after the dispatcher has logged a delivery it gave up on:

    python -m archive_review.reconcile
"""
import logging

from .database import SessionLocal, init_db
from .services.notifications import NotificationDispatcher


def reconcile() -> int:
    init_db()
    db = SessionLocal()
    try:
        return NotificationDispatcher(db).redeliver_missing()
    finally:
        db.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    count = reconcile()
    print(f"Redelivered {count} notification(s)")
