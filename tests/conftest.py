from __future__ import annotations

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from redirector.accountant import ClickAccountant
from redirector.config import Settings
from redirector.db import Base, make_engine, make_session_factory
from redirector.errors import EnrichmentFailed
from redirector.main import create_app
from redirector.models import ClickEvent, ShortLink
from redirector.resolver import LinkResolver
from redirector.schemas import GeoInfo
from redirector.service import RedirectOrchestrator
from redirector.store import ClickStatStore, LinkStore


class FakeEnricher:
    """Stands in for GeoEnricher; returns a fixed GeoInfo or raises."""

    def __init__(self, info: GeoInfo | None = None, error: Exception | None = None) -> None:
        self.info = info
        self.error = error
        self.calls: list[tuple[str, float | None]] = []

    def lookup(self, ip: str, timeout: float | None = None) -> GeoInfo:
        self.calls.append((ip, timeout))
        if self.error is not None:
            raise self.error
        if self.info is None:
            raise EnrichmentFailed("no data")
        return self.info

    def close(self) -> None:
        pass


@pytest.fixture
def db_engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'redirector-test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return make_session_factory(db_engine)


@pytest.fixture
def link_store(session_factory):
    return LinkStore(session_factory)


@pytest.fixture
def stat_store(session_factory):
    return ClickStatStore(session_factory)


@pytest.fixture
def make_link(session_factory):
    def _make(code: str, original_url: str = "https://example.com/page", **fields) -> str:
        link = ShortLink(
            code=code,
            original_url=original_url,
            created_at=datetime.now(timezone.utc),
            **fields,
        )
        with session_factory.begin() as session:
            session.add(link)
            session.flush()
            return link.id

    return _make


@pytest.fixture
def get_link(session_factory):
    def _get(link_id: str) -> ShortLink:
        with session_factory() as session:
            return session.get(ShortLink, link_id)

    return _get


@pytest.fixture
def click_events(session_factory):
    def _events(link_id: str) -> list[ClickEvent]:
        with session_factory() as session:
            return list(
                session.query(ClickEvent).filter(ClickEvent.link_id == link_id).order_by(ClickEvent.id).all()
            )

    return _events


@pytest.fixture
def fake_enricher():
    return FakeEnricher(
        GeoInfo(status="success", country="United States", countryCode="US", mobile=False, query="8.8.8.8")
    )


@pytest.fixture
def accountant(link_store, stat_store, fake_enricher):
    acc = ClickAccountant(link_store, stat_store, enricher=fake_enricher, timeout=5.0, max_workers=8)
    yield acc
    acc.shutdown(wait=True)


@pytest.fixture
def test_settings():
    return Settings(db_connect_attempts=1, geo_lookup_enabled=False, redis_url="")


@pytest.fixture
def orchestrator(link_store, accountant):
    return RedirectOrchestrator(LinkResolver(link_store), accountant)


@pytest.fixture
def client(test_settings, db_engine, orchestrator):
    app = create_app(cfg=test_settings, db_engine=db_engine, orchestrator=orchestrator, cache=None)
    with TestClient(app) as c:
        yield c
