from __future__ import annotations

import ipaddress
import json
import time

import httpx
from pydantic import ValidationError
from redis import Redis
from redis.exceptions import RedisError

from redirector.cache import CACHE_SOCKET_TIMEOUT_SECONDS, geo_key_for_ip
from redirector.errors import EnrichmentFailed
from redirector.logging_config import get_logger
from redirector.schemas import GeoInfo

logger = get_logger("enricher")

# Hard ceiling for a single lookup, whatever the caller asks for
MAX_LOOKUP_TIMEOUT_SECONDS = 2.0


def split_timeout(budget: float) -> httpx.Timeout:
    """
    httpx applies each timeout per phase; split one wall-clock budget so
    pool wait + connect + write + read can never exceed it.
    """
    return httpx.Timeout(connect=budget * 0.3, read=budget * 0.5, write=budget * 0.1, pool=budget * 0.1)


def is_public_ip(ip: str) -> bool:
    try:
        addr = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return not (
        addr.is_private
        or addr.is_loopback
        or addr.is_link_local
        or addr.is_reserved
        or addr.is_multicast
        or addr.is_unspecified
    )


class GeoEnricher:
    """
    Best-effort IP -> country / mobile lookup against an ip-api.com style
    endpoint. Every failure surfaces as EnrichmentFailed.
    """

    def __init__(
        self,
        url_template: str,
        timeout: float = MAX_LOOKUP_TIMEOUT_SECONDS,
        client: httpx.Client | None = None,
        cache: Redis | None = None,
        cache_ttl_seconds: int = 86400,
        cache_timeout: float = CACHE_SOCKET_TIMEOUT_SECONDS,
    ) -> None:
        self.url_template = url_template
        self.timeout = min(timeout, MAX_LOOKUP_TIMEOUT_SECONDS)
        self._owns_client = client is None
        self.client = client or httpx.Client()
        self.cache = cache
        self.cache_ttl_seconds = cache_ttl_seconds
        self.cache_timeout = cache_timeout

    def lookup(self, ip: str, timeout: float | None = None) -> GeoInfo:
        if not is_public_ip(ip):
            raise EnrichmentFailed(f"not a public address: {ip!r}")

        budget = self.timeout if timeout is None else min(timeout, self.timeout)
        if budget <= 0:
            raise EnrichmentFailed("no time left for lookup")
        # Cache round trips and every HTTP phase share this one deadline
        ends_at = time.monotonic() + budget
        cache_io = self.cache_timeout if self.cache is not None else 0.0

        if ends_at - time.monotonic() > 2 * cache_io:
            cached = self._cache_get(ip)
            if cached is not None:
                return cached

        effective = ends_at - time.monotonic() - cache_io
        if effective <= 0:
            raise EnrichmentFailed(f"lookup for {ip} ran out of time before the request")

        try:
            response = self.client.get(
                self.url_template.format(ip=ip),
                params={"fields": "status,message,country,countryCode,city,mobile,query"},
                timeout=split_timeout(effective),
            )
            response.raise_for_status()
            info = GeoInfo.model_validate(response.json())
        except httpx.TimeoutException as e:
            raise EnrichmentFailed(f"lookup for {ip} timed out after {effective:.2f}s") from e
        except httpx.HTTPError as e:
            raise EnrichmentFailed(f"lookup for {ip} failed: {e}") from e
        except (ValueError, ValidationError) as e:
            raise EnrichmentFailed(f"lookup for {ip} returned an unreadable body") from e

        if info.status != "success":
            raise EnrichmentFailed(f"lookup for {ip} unsuccessful: {info.message or info.status}")

        if ends_at - time.monotonic() > cache_io:
            self._cache_set(ip, info)
        return info

    def _cache_get(self, ip: str) -> GeoInfo | None:
        if self.cache is None:
            return None
        try:
            raw = self.cache.get(geo_key_for_ip(ip))
            if raw is None:
                return None
            return GeoInfo.model_validate_json(raw)
        except (RedisError, ValidationError) as e:
            logger.warning("geo cache read failed for %s: %s", ip, e)
            return None

    def _cache_set(self, ip: str, info: GeoInfo) -> None:
        if self.cache is None:
            return
        try:
            payload = json.dumps(info.model_dump(by_alias=True))
            self.cache.setex(geo_key_for_ip(ip), self.cache_ttl_seconds, payload)
        except RedisError as e:
            logger.warning("geo cache write failed for %s: %s", ip, e)

    def close(self) -> None:
        if self._owns_client:
            self.client.close()
