from datetime import datetime, timedelta, timezone

import pytest

from redirector.errors import (
    ClickBudgetExhausted,
    LinkExpired,
    LinkInactive,
    LinkNotFound,
    StoreUnavailable,
)
from redirector.resolver import LinkResolver, is_valid_code
from redirector.schemas import LinkRecord


class CountingStore:
    def __init__(self, record=None, error=None):
        self.record = record
        self.error = error
        self.lookups = []

    def lookup_by_code(self, code):
        self.lookups.append(code)
        if self.error is not None:
            raise self.error
        return self.record


def now():
    return datetime.now(timezone.utc)


@pytest.mark.parametrize("code", ["", "ab", "a" * 17, "bad code", "abc/def", "ab.cd", None])
def test_malformed_codes_are_not_found_without_lookup(code):
    store = CountingStore()
    with pytest.raises(LinkNotFound):
        LinkResolver(store).resolve(code)
    assert store.lookups == []


def test_is_valid_code():
    assert is_valid_code("abc123")
    assert is_valid_code("my-link_01")
    assert not is_valid_code("")


def test_missing_link(link_store):
    with pytest.raises(LinkNotFound):
        LinkResolver(link_store).resolve("nothere")


def test_valid_link_resolves(link_store, make_link):
    link_id = make_link("abc123", "https://example.com/page")
    resolved = LinkResolver(link_store).resolve("abc123")
    assert resolved.link_id == link_id
    assert resolved.original_url == "https://example.com/page"
    assert resolved.has_click_budget is False


def test_exactly_one_lookup_per_resolution():
    record = LinkRecord(id="l1", code="abc123", original_url="https://example.com", is_active=True)
    store = CountingStore(record=record)
    LinkResolver(store).resolve("abc123")
    assert store.lookups == ["abc123"]


def test_inactive_wins_over_expiry_and_budget(link_store, make_link):
    make_link(
        "off001",
        is_active=False,
        expired_at=now() - timedelta(days=1),
        click_limit=0,
    )
    with pytest.raises(LinkInactive):
        LinkResolver(link_store).resolve("off001")


def test_expired_checked_before_budget(link_store, make_link):
    make_link("gone1", expired_at=now() - timedelta(days=1), click_limit=0)
    with pytest.raises(LinkExpired):
        LinkResolver(link_store).resolve("gone1")


def test_budget_exhausted_with_future_expiry(link_store, make_link):
    make_link("spent1", expired_at=now() + timedelta(days=1), click_limit=0)
    with pytest.raises(ClickBudgetExhausted):
        LinkResolver(link_store).resolve("spent1")


def test_budget_exhausted_without_expiry(link_store, make_link):
    make_link("spent2", click_limit=0)
    with pytest.raises(ClickBudgetExhausted):
        LinkResolver(link_store).resolve("spent2")


def test_finite_budget_is_reported(link_store, make_link):
    make_link("limit5", click_limit=5)
    assert LinkResolver(link_store).resolve("limit5").has_click_budget is True


def test_expiry_uses_injected_clock(link_store, make_link):
    expiry = now() + timedelta(hours=1)
    make_link("later1", expired_at=expiry)
    resolver = LinkResolver(link_store, clock=lambda: expiry + timedelta(seconds=1))
    with pytest.raises(LinkExpired):
        resolver.resolve("later1")


def test_repeated_resolution_does_not_mutate(link_store, make_link, get_link):
    link_id = make_link("abc123", "https://example.com/page")
    resolver = LinkResolver(link_store)
    urls = {resolver.resolve("abc123").original_url for _ in range(10)}
    assert urls == {"https://example.com/page"}
    link = get_link(link_id)
    assert link.is_active is True
    assert link.click_limit is None


def test_store_errors_propagate():
    store = CountingStore(error=StoreUnavailable("db down"))
    with pytest.raises(StoreUnavailable):
        LinkResolver(store).resolve("abc123")


def test_is_redirectable_invariant():
    t = now()
    base = dict(id="l1", code="abc123", original_url="https://example.com")
    assert LinkRecord(is_active=True, **base).is_redirectable(t)
    assert LinkRecord(is_active=True, click_limit=1, expired_at=t + timedelta(seconds=1), **base).is_redirectable(t)
    assert not LinkRecord(is_active=False, **base).is_redirectable(t)
    assert not LinkRecord(is_active=True, expired_at=t, **base).is_redirectable(t)
    assert not LinkRecord(is_active=True, click_limit=0, **base).is_redirectable(t)
    # naive timestamps are read as UTC
    naive_past = (t - timedelta(minutes=1)).replace(tzinfo=None)
    assert not LinkRecord(is_active=True, expired_at=naive_past, **base).is_redirectable(t)
