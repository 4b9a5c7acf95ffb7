from __future__ import annotations

from dataclasses import dataclass

from redirector.accountant import ClickAccountant
from redirector.errors import RedirectError, StoreUnavailable
from redirector.logging_config import get_logger
from redirector.resolver import LinkResolver
from redirector.schemas import RequestMetadata

logger = get_logger("service")


@dataclass(frozen=True)
class RedirectOutcome:
    status_code: int
    location: str | None = None
    body: str | None = None


def handle_redirect(
    resolver: LinkResolver,
    accountant: ClickAccountant,
    code: str,
    meta: RequestMetadata,
) -> RedirectOutcome:
    """
    Redirect hot path:
      1) Resolve + validate the link (one store lookup, no writes)
      2) Hand click accounting to the detached accountant (not awaited)
      3) 302 to the destination
    Metadata must already be extracted from the live request.
    """
    try:
        link = resolver.resolve(code)
    except StoreUnavailable as e:
        logger.exception("store unavailable while resolving code=%s: %s", code, e)
        return RedirectOutcome(status_code=e.status_code, body=e.message)
    except RedirectError as e:
        return RedirectOutcome(status_code=e.status_code, body=e.message)
    except Exception:
        logger.exception("unexpected error while resolving code=%s", code)
        return RedirectOutcome(status_code=500, body=StoreUnavailable.message)

    try:
        accountant.account(link, meta)
    except Exception:
        # Accounting must never break a redirect that already resolved
        logger.exception("failed to schedule click accounting: link_id=%s", link.link_id)

    logger.info("redirecting code=%s link_id=%s -> %s", code, link.link_id, link.original_url)
    return RedirectOutcome(status_code=302, location=link.original_url)


class RedirectOrchestrator:
    def __init__(self, resolver: LinkResolver, accountant: ClickAccountant) -> None:
        self.resolver = resolver
        self.accountant = accountant

    def handle_redirect(self, code: str, meta: RequestMetadata) -> RedirectOutcome:
        return handle_redirect(self.resolver, self.accountant, code, meta)

    def shutdown(self) -> None:
        self.accountant.shutdown(wait=True)
