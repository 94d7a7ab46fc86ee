from __future__ import annotations

import datetime as dt
import logging
import threading
import time

from . import config
from .cart import release_expired_carts
from .database import SessionLocal
from .messaging import publish_event_after_commit

logger = logging.getLogger(__name__)


def sweep_once() -> int:
    db = SessionLocal()
    try:
        released = release_expired_carts(db)
    finally:
        db.close()

    if released:
        publish_event_after_commit(
            "reservation.expired",
            {
                "event": "reservation.expired",
                "occurred_at": dt.datetime.now(dt.timezone.utc).isoformat().replace("+00:00", "Z"),
                "cart_ids": released,
            },
        )
    return len(released)


def start_reservation_sweeper(interval_seconds: int | None = None) -> threading.Thread | None:
    interval = config.RESERVATION_SWEEP_INTERVAL_SECONDS if interval_seconds is None else interval_seconds
    if interval <= 0:
        logger.info("reservation sweeper disabled")
        return None

    def _run() -> None:
        while True:
            time.sleep(interval)
            try:
                sweep_once()
            except Exception:
                logger.exception("reservation sweep failed")

    t = threading.Thread(target=_run, name="reservation-sweeper", daemon=True)
    t.start()
    logger.info("reservation sweeper running every %ss", interval)
    return t
