from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


def as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything is stored as UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class LinkRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    code: str
    original_url: str
    is_active: bool
    expired_at: datetime | None = None
    click_limit: int | None = None
    user_id: str | None = None

    def is_expired(self, now: datetime) -> bool:
        expired_at = as_utc(self.expired_at)
        return expired_at is not None and expired_at <= now

    def is_budget_exhausted(self) -> bool:
        return self.click_limit is not None and self.click_limit <= 0

    def is_redirectable(self, now: datetime) -> bool:
        return self.is_active and not self.is_expired(now) and not self.is_budget_exhausted()


class ResolvedLink(BaseModel):
    model_config = ConfigDict(frozen=True)

    link_id: str
    original_url: str
    has_click_budget: bool = False


class RequestMetadata(BaseModel):
    """Values copied out of the inbound request; safe to hand to another thread."""

    model_config = ConfigDict(frozen=True)

    ip_address: str | None = None
    user_agent: str | None = None
    referrer: str | None = None
    country: str | None = None
    device_type: str | None = None


class GeoInfo(BaseModel):
    """Subset of the ip-api.com /json response."""

    status: str
    country: str | None = None
    country_code: str | None = Field(default=None, alias="countryCode")
    city: str | None = None
    mobile: bool | None = None
    query: str | None = None
    message: str | None = None

    model_config = ConfigDict(populate_by_name=True)


class ClickRecord(BaseModel):
    link_id: str
    click_time: datetime
    ip_address: str | None = None
    user_agent: str | None = None
    referrer: str | None = None
    country: str | None = None
    device_type: str | None = None


class ComponentStatus(BaseModel):
    component: str
    status: str
    message: str | None = None


class HealthResponse(BaseModel):
    status: str
    service: str
    components: list[ComponentStatus]
