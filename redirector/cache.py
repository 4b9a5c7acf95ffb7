from redis import Redis

from redirector.config import settings

# Upper bound on a single cache round trip
CACHE_SOCKET_TIMEOUT_SECONDS = 0.25


def make_redis(url: str) -> Redis | None:
    if not url:
        return None
    return Redis.from_url(
        url,
        decode_responses=True,
        socket_timeout=CACHE_SOCKET_TIMEOUT_SECONDS,
        socket_connect_timeout=CACHE_SOCKET_TIMEOUT_SECONDS,
    )


redis_client = make_redis(settings.redis_url)


def geo_key_for_ip(ip: str) -> str:
    return f"geo:{ip}"
