from __future__ import annotations

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_for_futures
from datetime import datetime
from typing import Callable

from redirector.enricher import GeoEnricher
from redirector.errors import AccountingError, EnrichmentFailed, StoreUnavailable
from redirector.logging_config import get_logger
from redirector.request_meta import classify_user_agent
from redirector.resolver import utcnow
from redirector.schemas import ClickRecord, GeoInfo, RequestMetadata, ResolvedLink
from redirector.store import ClickStatStore, LinkStore

logger = get_logger("accountant")

# Share of each job deadline held back for the click event insert
PERSIST_RESERVE_FRACTION = 1 / 3


def merge_device_type(
    header_device: str | None,
    user_agent: str | None,
    geo: GeoInfo | None,
) -> str | None:
    """
    Device precedence: trusted header, then User-Agent classification, then
    the enrichment mobile flag. Enrichment only fills a missing value.
    """
    if header_device:
        return header_device
    ua_device = classify_user_agent(user_agent)
    if ua_device:
        return ua_device
    if geo is not None and geo.mobile is not None:
        return "Mobile" if geo.mobile else "Desktop"
    return None


class ClickAccountant:
    """
    Detached click accounting.

    Each successful redirect hands over two independent jobs: the atomic
    click-budget decrement and the (optionally enriched) click event insert.
    Jobs run on a bounded worker pool, carry their own deadline that starts
    at hand-over, and never report failures back to the caller.
    """

    def __init__(
        self,
        link_store: LinkStore,
        stat_store: ClickStatStore,
        enricher: GeoEnricher | None = None,
        timeout: float = 3.0,
        max_workers: int = 8,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.link_store = link_store
        self.stat_store = stat_store
        self.enricher = enricher
        self.timeout = timeout
        self.persist_reserve = timeout * PERSIST_RESERVE_FRACTION
        self.clock = clock
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="click-accountant")
        self._pending: set[Future] = set()
        self._lock = threading.Lock()
        self._closed = False

    def account(self, link: ResolvedLink, meta: RequestMetadata) -> None:
        deadline = time.monotonic() + self.timeout
        click_time = self.clock()

        if link.has_click_budget:
            self._submit(self._decrement, link, deadline)
        self._submit(self._record, link, meta, click_time, deadline)

    def _submit(self, fn: Callable[..., None], *args) -> None:
        with self._lock:
            if self._closed:
                logger.warning("accountant is shut down, dropping %s", fn.__name__)
                return
            try:
                future = self._executor.submit(fn, *args)
            except RuntimeError:
                logger.warning("executor rejected %s", fn.__name__)
                return
            self._pending.add(future)
        future.add_done_callback(self._forget)

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error("accounting job crashed", exc_info=exc)

    def _decrement(self, link: ResolvedLink, deadline: float) -> None:
        if time.monotonic() >= deadline:
            logger.warning("decrement abandoned, deadline passed: link_id=%s", link.link_id)
            return
        try:
            changed = self.link_store.decrement_remaining_clicks(
                link.link_id, timeout=deadline - time.monotonic()
            )
        except StoreUnavailable as e:
            logger.error("failed to decrement click limit: link_id=%s error=%s", link.link_id, e)
            return
        if not changed:
            logger.info("click limit already at zero: link_id=%s", link.link_id)

    def _record(self, link: ResolvedLink, meta: RequestMetadata, click_time: datetime, deadline: float) -> None:
        if time.monotonic() >= deadline:
            logger.warning("click event abandoned, deadline passed: link_id=%s", link.link_id)
            return

        geo = None
        needs_enrichment = meta.country is None or (
            meta.device_type is None and classify_user_agent(meta.user_agent) is None
        )
        if needs_enrichment and self.enricher is not None and meta.ip_address:
            geo = self._enrich(meta.ip_address, deadline)

        record = ClickRecord(
            link_id=link.link_id,
            click_time=click_time,
            ip_address=meta.ip_address,
            user_agent=meta.user_agent,
            referrer=meta.referrer,
            country=meta.country or (geo.country_code if geo else None),
            device_type=merge_device_type(meta.device_type, meta.user_agent, geo),
        )

        # A record that is already built gets persisted even if enrichment ran long
        insert_timeout = max(deadline - time.monotonic(), self.persist_reserve)
        try:
            event_id = self.stat_store.insert_click_event(record, timeout=insert_timeout)
        except AccountingError as e:
            logger.error("failed to record link stat: link_id=%s error=%s", link.link_id, e)
            return
        logger.info("recorded link stat: link_id=%s event_id=%s", link.link_id, event_id)

    def _enrich(self, ip: str, deadline: float) -> GeoInfo | None:
        budget = deadline - time.monotonic() - self.persist_reserve
        if budget <= 0:
            logger.info("skipping enrichment for %s: no time left before the insert", ip)
            return None
        try:
            return self.enricher.lookup(ip, timeout=budget)
        except EnrichmentFailed as e:
            logger.info("skipping enrichment for %s: %s", ip, e)
            return None
        except Exception:
            logger.exception("unexpected enrichment error for %s", ip)
            return None

    def drain(self, timeout: float | None = None) -> bool:
        """Wait for in-flight jobs. Returns False if some are still running."""
        with self._lock:
            pending = list(self._pending)
        if not pending:
            return True
        _, not_done = wait_for_futures(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=wait)
