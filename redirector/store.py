from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from redirector.db import apply_statement_timeout
from redirector.errors import AccountingPersistFailed, StoreUnavailable
from redirector.models import ClickEvent, ShortLink
from redirector.schemas import ClickRecord, LinkRecord


class LinkStore:
    """
    Read access to short links plus the one write the redirect path needs:
    an atomic, conditional decrement of the click budget.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def lookup_by_code(self, code: str) -> LinkRecord | None:
        stmt = select(ShortLink).where(ShortLink.code == code)
        try:
            with self._session_factory() as session:
                row = session.scalars(stmt).first()
                if row is None:
                    return None
                return LinkRecord.model_validate(row)
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"lookup of {code!r} failed: {e}") from e

    def decrement_remaining_clicks(self, link_id: str, timeout: float | None = None) -> bool:
        """
        Single conditional UPDATE, so concurrent redirects of the same link
        can never lose a decrement or drive the counter below zero.
        Returns False when there was nothing to decrement. `timeout` bounds
        the time spent waiting on the database, in seconds.
        """
        stmt = (
            update(ShortLink)
            .where(
                ShortLink.id == link_id,
                ShortLink.click_limit.is_not(None),
                ShortLink.click_limit > 0,
            )
            .values(click_limit=ShortLink.click_limit - 1)
            .execution_options(synchronize_session=False)
        )
        try:
            with self._session_factory.begin() as session:
                apply_statement_timeout(session, timeout)
                result = session.execute(stmt)
                return result.rowcount > 0
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"decrement of link {link_id} failed: {e}") from e


class ClickStatStore:
    """Append-only click events."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def insert_click_event(self, record: ClickRecord, timeout: float | None = None) -> str:
        event = ClickEvent(**record.model_dump())
        try:
            with self._session_factory.begin() as session:
                apply_statement_timeout(session, timeout)
                session.add(event)
                session.flush()
                return event.id
        except SQLAlchemyError as e:
            raise AccountingPersistFailed(f"insert for link {record.link_id} failed: {e}") from e
