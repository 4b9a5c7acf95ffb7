import os
from dataclasses import dataclass


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./redirector.db")
    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    db_connect_attempts: int = int(os.getenv("DB_CONNECT_ATTEMPTS", "30"))

    # Detached click accounting
    accounting_timeout_seconds: float = float(os.getenv("ACCOUNTING_TIMEOUT_SECONDS", "3.0"))
    accounting_workers: int = int(os.getenv("ACCOUNTING_WORKERS", "8"))

    # Geo/device enrichment (ip-api.com compatible)
    geo_lookup_enabled: bool = _env_bool("GEO_LOOKUP_ENABLED", "true")
    geo_lookup_url: str = os.getenv("GEO_LOOKUP_URL", "http://ip-api.com/json/{ip}")
    geo_lookup_timeout_seconds: float = float(os.getenv("GEO_LOOKUP_TIMEOUT_SECONDS", "2.0"))
    geo_cache_ttl_seconds: int = int(os.getenv("GEO_CACHE_TTL_SECONDS", "86400"))

    # Headers set by a trusted reverse proxy / CDN
    trusted_ip_header: str = os.getenv("TRUSTED_IP_HEADER", "X-Real-IP")
    country_header: str = os.getenv("COUNTRY_HEADER", "CF-IPCountry")
    device_header: str = os.getenv("DEVICE_HEADER", "X-Device-Type")

settings = Settings()
