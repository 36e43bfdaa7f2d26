from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ConnectionStatus:
    connected: bool
    checked_at: datetime
    error: str = ""

    def is_stale(self, now: datetime, max_age: timedelta) -> bool:
        return now - self.checked_at >= max_age


def probe_connection(session: Session, now: datetime | None = None) -> ConnectionStatus:
    checked_at = now or datetime.now(UTC)
    try:
        session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("Data store connectivity probe failed: %s", exc)
        session.rollback()
        return ConnectionStatus(connected=False, checked_at=checked_at, error=str(exc))
    return ConnectionStatus(connected=True, checked_at=checked_at)


def refresh_if_stale(
    status: ConnectionStatus | None,
    session: Session,
    *,
    now: datetime | None = None,
    max_age: timedelta = timedelta(seconds=30),
) -> ConnectionStatus:
    """Return ``status`` unchanged while it is fresh, otherwise probe again.

    A disconnected status is always re-probed so a manual retry is never
    answered from the previous result.
    """
    current = now or datetime.now(UTC)
    if status is not None and status.connected and not status.is_stale(current, max_age):
        return status
    return probe_connection(session, now=current)
