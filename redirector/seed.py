from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from redirector.db import Base, SessionLocal, engine
from redirector.logging_config import get_logger, setup_logging
from redirector.models import ShortLink

logger = get_logger("seed")


def demo_links(now: datetime) -> list[dict]:
    return [
        {"code": "abc123", "original_url": "https://example.com/page", "click_limit": None},
        {"code": "limit5", "original_url": "https://example.com/limited", "click_limit": 5},
        {"code": "off001", "original_url": "https://example.com/disabled", "is_active": False},
        {"code": "gone1", "original_url": "https://example.com/old", "expired_at": now - timedelta(days=1)},
    ]


def seed_links(session_factory: sessionmaker[Session], now: datetime | None = None) -> int:
    """Insert the demo links that do not exist yet. Returns how many were added."""
    now = now or datetime.now(timezone.utc)
    added = 0
    with session_factory.begin() as session:
        existing = set(session.scalars(select(ShortLink.code)))
        for fields in demo_links(now):
            if fields["code"] in existing:
                continue
            session.add(ShortLink(created_at=now, **fields))
            added += 1
    return added


def main() -> None:
    setup_logging()
    Base.metadata.create_all(bind=engine)
    n = seed_links(SessionLocal)
    logger.info("seeded %d demo links", n)


if __name__ == "__main__":
    main()
