from __future__ import annotations

import ipaddress

from fastapi import Request

from redirector.config import Settings
from redirector.schemas import RequestMetadata

DEVICE_TYPES = ("Desktop", "Mobile", "Tablet")

# Placeholder country codes some CDNs send for unknown / Tor traffic
UNKNOWN_COUNTRIES = {"XX", "T1"}


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _valid_ip(value: str | None) -> str | None:
    value = _clean(value)
    if value is None:
        return None
    try:
        return str(ipaddress.ip_address(value))
    except ValueError:
        return None


def resolve_client_ip(request: Request, trusted_header: str) -> str | None:
    """trusted proxy header -> first X-Forwarded-For entry -> socket peer."""
    ip = _valid_ip(request.headers.get(trusted_header)) if trusted_header else None
    if ip:
        return ip

    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        ip = _valid_ip(forwarded.split(",")[0])
        if ip:
            return ip

    if request.client:
        return _valid_ip(request.client.host) or _clean(request.client.host)
    return None


def normalize_device_type(value: str | None) -> str | None:
    value = _clean(value)
    if value is None:
        return None
    for device in DEVICE_TYPES:
        if value.lower() == device.lower():
            return device
    return None


def normalize_country(value: str | None) -> str | None:
    value = _clean(value)
    if value is None:
        return None
    value = value.upper()
    if value in UNKNOWN_COUNTRIES:
        return None
    return value


def classify_user_agent(user_agent: str | None) -> str | None:
    if not user_agent:
        return None
    ua = user_agent.lower()
    if "ipad" in ua or "tablet" in ua:
        return "Tablet"
    if "mobi" in ua or "android" in ua or "iphone" in ua:
        return "Mobile"
    return "Desktop"


def extract_request_metadata(request: Request, settings: Settings) -> RequestMetadata:
    """
    Copy everything the accounting job needs out of the live request.
    Must run inside the handler: the request object is gone once it returns.
    """
    return RequestMetadata(
        ip_address=resolve_client_ip(request, settings.trusted_ip_header),
        user_agent=_clean(request.headers.get("User-Agent")),
        referrer=_clean(request.headers.get("Referer")),
        country=normalize_country(request.headers.get(settings.country_header)),
        device_type=normalize_device_type(request.headers.get(settings.device_header)),
    )
