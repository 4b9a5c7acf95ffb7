from __future__ import annotations

import time

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse, Response
from redis import Redis
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from redirector.accountant import ClickAccountant
from redirector.cache import redis_client
from redirector.config import Settings, settings as default_settings
from redirector.db import Base, engine as default_engine, make_session_factory
from redirector.enricher import GeoEnricher
from redirector.logging_config import get_logger, setup_logging
from redirector.request_meta import extract_request_metadata
from redirector.resolver import LinkResolver
from redirector.schemas import ComponentStatus, HealthResponse
from redirector.service import RedirectOrchestrator
from redirector.store import ClickStatStore, LinkStore

logger = get_logger("main")


def build_orchestrator(
    cfg: Settings,
    session_factory: sessionmaker,
    cache: Redis | None = None,
) -> RedirectOrchestrator:
    enricher = None
    if cfg.geo_lookup_enabled:
        enricher = GeoEnricher(
            cfg.geo_lookup_url,
            timeout=cfg.geo_lookup_timeout_seconds,
            cache=cache,
            cache_ttl_seconds=cfg.geo_cache_ttl_seconds,
        )
    link_store = LinkStore(session_factory)
    accountant = ClickAccountant(
        link_store,
        ClickStatStore(session_factory),
        enricher=enricher,
        timeout=cfg.accounting_timeout_seconds,
        max_workers=cfg.accounting_workers,
    )
    return RedirectOrchestrator(LinkResolver(link_store), accountant)


def wait_for_database(db_engine: Engine, max_attempts: int, sleep_seconds: float = 1) -> None:
    """
    Wait for the database to be reachable before creating tables.
    This avoids 'connection refused' when containers start in parallel.
    """
    last_err: Exception | None = None
    for _ in range(max(1, max_attempts)):
        try:
            with db_engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            last_err = None
            break
        except SQLAlchemyError as e:
            last_err = e
            logger.warning("database not reachable yet: %s", e)
            time.sleep(sleep_seconds)

    if last_err is not None:
        raise RuntimeError(f"Database not reachable after {max_attempts} attempts") from last_err


def create_app(
    cfg: Settings = default_settings,
    db_engine: Engine = default_engine,
    orchestrator: RedirectOrchestrator | None = None,
    cache: Redis | None = redis_client,
) -> FastAPI:
    setup_logging(cfg.log_level)

    if orchestrator is None:
        orchestrator = build_orchestrator(cfg, make_session_factory(db_engine), cache=cache)

    app = FastAPI(title="Short Link Redirector", docs_url=None, redoc_url=None, openapi_url=None)
    app.state.orchestrator = orchestrator

    @app.on_event("startup")
    def on_startup() -> None:
        wait_for_database(db_engine, cfg.db_connect_attempts)
        # MVP: create tables automatically
        Base.metadata.create_all(bind=db_engine)
        logger.info("redirector ready, database=%s", db_engine.url.render_as_string(hide_password=True))

    @app.on_event("shutdown")
    def on_shutdown() -> None:
        orchestrator.shutdown()
        enricher = orchestrator.accountant.enricher
        if enricher is not None:
            enricher.close()

    @app.get("/health", response_model=HealthResponse)
    def health() -> JSONResponse:
        components = [_check_database(db_engine), _check_redis(cache)]
        healthy = all(c.status != "down" for c in components)
        payload = HealthResponse(
            status="ok" if healthy else "degraded",
            service="redirector",
            components=components,
        )
        return JSONResponse(payload.model_dump(), status_code=200 if healthy else 503)

    @app.get("/{code}")
    def redirect(code: str, request: Request) -> Response:
        # Request-scoped data is only valid while the handler runs
        meta = extract_request_metadata(request, cfg)
        outcome = orchestrator.handle_redirect(code, meta)

        if outcome.location is not None:
            return RedirectResponse(url=outcome.location, status_code=outcome.status_code)
        return PlainTextResponse(outcome.body or "", status_code=outcome.status_code)

    return app


def _check_database(db_engine: Engine) -> ComponentStatus:
    try:
        with db_engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("database health check failed: %s", e)
        return ComponentStatus(component="database", status="down", message=str(e))
    return ComponentStatus(component="database", status="up")


def _check_redis(cache: Redis | None) -> ComponentStatus:
    # The geo cache is optional; its absence is not an outage
    if cache is None:
        return ComponentStatus(component="redis", status="disabled")
    try:
        cache.ping()
    except RedisError as e:
        logger.warning("redis health check failed: %s", e)
        return ComponentStatus(component="redis", status="unavailable", message=str(e))
    return ComponentStatus(component="redis", status="up")


app = create_app()
