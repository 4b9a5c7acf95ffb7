"""
Error taxonomy for the redirect path.

RedirectError subclasses are raised synchronously by the resolver and map
one-to-one onto the HTTP status of the redirect attempt.
AccountingError subclasses only ever live inside the detached click
accounting jobs: they are logged there and never reach a client.
"""


class RedirectError(Exception):
    status_code: int = 500
    message: str = "Internal server error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.message)


class LinkNotFound(RedirectError):
    status_code = 404
    message = "Link not found"


class LinkInactive(RedirectError):
    status_code = 403
    message = "Link is inactive"


class LinkExpired(RedirectError):
    status_code = 410
    message = "Link has expired"


class ClickBudgetExhausted(RedirectError):
    status_code = 429
    message = "Click limit exceeded"


class StoreUnavailable(RedirectError):
    status_code = 500
    message = "Internal server error"


class AccountingError(Exception):
    pass


class EnrichmentFailed(AccountingError):
    pass


class AccountingPersistFailed(AccountingError):
    pass
