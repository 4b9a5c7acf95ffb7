from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Callable

from redirector.errors import ClickBudgetExhausted, LinkExpired, LinkInactive, LinkNotFound
from redirector.logging_config import get_logger
from redirector.store import LinkStore
from redirector.schemas import ResolvedLink

logger = get_logger("resolver")

SHORT_CODE_RE = re.compile(r"[A-Za-z0-9_-]{3,16}")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_valid_code(code: str | None) -> bool:
    return bool(code) and SHORT_CODE_RE.fullmatch(code) is not None


class LinkResolver:
    """
    Validates a stored link against the current time and its click budget.
    Read-only: consuming a click is left to the ClickAccountant.
    """

    def __init__(self, store: LinkStore, clock: Callable[[], datetime] = utcnow) -> None:
        self.store = store
        self.clock = clock

    def resolve(self, code: str) -> ResolvedLink:
        if not is_valid_code(code):
            logger.warning("rejected malformed code %r", code)
            raise LinkNotFound()

        link = self.store.lookup_by_code(code)

        if link is None:
            logger.warning("link not found: code=%s", code)
            raise LinkNotFound()

        if not link.is_active:
            logger.warning("inactive link: code=%s link_id=%s", code, link.id)
            raise LinkInactive()

        if link.is_expired(self.clock()):
            logger.warning("expired link: code=%s link_id=%s", code, link.id)
            raise LinkExpired()

        if link.is_budget_exhausted():
            logger.warning("click limit exhausted: code=%s link_id=%s", code, link.id)
            raise ClickBudgetExhausted()

        return ResolvedLink(
            link_id=link.id,
            original_url=link.original_url,
            has_click_budget=link.click_limit is not None,
        )
