"""
ORACLE RELAY — FastAPI Application
Thin HTTP surface over the relay services: prices, sentiment, publishing,
scheduler control and alerts.
"""
import asyncio
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import aiohttp
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from oracle_relay.config.settings import get_settings
from oracle_relay.data.errors import LedgerError, NoProviderAvailable, ProviderError
from oracle_relay.data.models import AlertCondition, AlertRecord, PriceReading, PriceSource, PriorityMode
from oracle_relay.publisher.scheduler import SchedulerAlreadyRunning
from oracle_relay.services import OracleRelayServices
from oracle_relay.utils.helpers import PRICE_DECIMALS, format_price, normalize_symbol, parse_price, utc_timestamp
from oracle_relay.utils.logger import get_logger, setup_logging

logger = get_logger("api")

DOWNSTREAM_TIMEOUT_SECONDS = 5.0


def get_services(request: Request) -> OracleRelayServices:
    return request.app.state.services


def _reading_dict(reading: PriceReading) -> Dict[str, Any]:
    return {
        "symbol": reading.symbol,
        "price": str(reading.price),
        "decimals": reading.decimals,
        "display_price": reading.display_price,
        "source": reading.source.value,
        "source_address": reading.source_address,
        "timestamp": reading.timestamp,
    }


def _alert_dict(alert: AlertRecord) -> Dict[str, Any]:
    return {
        "alert_id": alert.alert_id,
        "user_address": alert.user_address,
        "asset": alert.asset,
        "condition": alert.condition.value,
        "threshold_price": str(alert.threshold_price),
        "display_threshold": format_price(alert.threshold_price, alert.decimals),
        "decimals": alert.decimals,
        "status": alert.status.value,
        "created_at": alert.created_at,
        "triggered_at": alert.triggered_at,
    }


# ─── Request bodies ─────────────────────────────────────────────

class PublishRequest(BaseModel):
    symbols: Optional[List[str]] = None
    include_sentiment: bool = False


class StartRequest(BaseModel):
    symbols: Optional[List[str]] = None
    interval_ms: Optional[int] = Field(default=None, gt=0)


class ConfigUpdateRequest(BaseModel):
    priority: Optional[PriorityMode] = None
    enabled_providers: Optional[List[PriceSource]] = None
    publish_interval_ms: Optional[int] = Field(default=None, gt=0)
    symbol_delay_ms: Optional[int] = Field(default=None, ge=0)


class CreateAlertRequest(BaseModel):
    user_address: str
    asset: str
    condition: AlertCondition
    threshold_price: str = Field(description="Decimal string, e.g. '52500.00'")
    decimals: int = PRICE_DECIMALS


class CheckAlertsRequest(BaseModel):
    asset: str
    price: Optional[str] = Field(default=None, description="Decimal string; omitted = fetch best price")
    decimals: int = PRICE_DECIMALS


router = APIRouter()


# ─── Health ─────────────────────────────────────────────────────

@router.get("/healthz", tags=["System"])
async def health_check(request: Request):
    """Fast liveness check."""
    return JSONResponse(
        status_code=200,
        content={
            "status": "healthy",
            "instance": request.app.state.instance_id,
            "uptime_since": request.app.state.started_at,
            "timestamp": utc_timestamp(),
        },
    )


async def _check_downstream(url: str) -> Dict[str, Any]:
    try:
        timeout = aiohttp.ClientTimeout(total=DOWNSTREAM_TIMEOUT_SECONDS)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(url) as resp:
                return {"url": url, "reachable": resp.status < 500, "status": resp.status}
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        return {"url": url, "reachable": False, "error": str(e) or type(e).__name__}


@router.get("/api/health", tags=["System"])
async def api_health(services: OracleRelayServices = Depends(get_services)):
    """Local status plus downstream reachability."""
    downstream = await _check_downstream(services.settings.downstream_health_url)
    ledger_ok = await services.ledger.is_healthy()
    return {
        "status": "ok" if ledger_ok else "degraded",
        "ledger": {"backend": services.ledger.name, "healthy": ledger_ok},
        "schemas_registered": services.registrar.registered,
        "publisher": services.scheduler.status(),
        "aggregator": services.aggregator.status(),
        "telegram": services.notifier.stats,
        "downstream": downstream,
        "timestamp": utc_timestamp(),
    }


# ─── Readings ───────────────────────────────────────────────────

@router.get("/api/prices/{symbol}", tags=["Data"])
async def get_price(symbol: str, services: OracleRelayServices = Depends(get_services)):
    reading = await services.aggregator.fetch_best(symbol)
    return _reading_dict(reading)


@router.get("/api/sentiment/{symbol}", tags=["Data"])
async def get_sentiment(symbol: str, services: OracleRelayServices = Depends(get_services)):
    if not services.sentiment_client.supports(symbol):
        raise HTTPException(status_code=404, detail=f"No sentiment source for {normalize_symbol(symbol)}")
    reading = await services.sentiment_client.get_sentiment(symbol)
    return reading.model_dump()


@router.get("/api/fear-greed", tags=["Data"])
async def get_fear_greed(services: OracleRelayServices = Depends(get_services)):
    reading = await services.fear_greed_client.get_fear_greed()
    return reading.model_dump(mode="json")


# ─── Publishing ─────────────────────────────────────────────────

@router.post("/api/publish", tags=["Publisher"])
async def publish(body: Optional[PublishRequest] = None, services: OracleRelayServices = Depends(get_services)):
    """Run one publish pass; per-symbol failures are reported, not raised."""
    body = body or PublishRequest()
    symbols = body.symbols or services.default_symbols
    report = await services.publisher.publish_all(symbols)
    response: Dict[str, Any] = {**report.to_dict(), "timestamp": utc_timestamp()}
    if body.include_sentiment:
        response["sentiment"] = await services.sentiment_publisher.publish_all(
            services.settings.publisher.sentiment_symbol_list
        )
    return response


@router.post("/api/publisher/start", tags=["Publisher"])
async def start_publisher(body: Optional[StartRequest] = None, services: OracleRelayServices = Depends(get_services)):
    body = body or StartRequest()
    services.scheduler.start(body.symbols or services.default_symbols, body.interval_ms)
    return {"status": "started", **services.scheduler.status()}


@router.post("/api/publisher/stop", tags=["Publisher"])
async def stop_publisher(services: OracleRelayServices = Depends(get_services)):
    services.scheduler.stop()
    return {"status": "stopped", **services.scheduler.status()}


@router.get("/api/publisher/status", tags=["Publisher"])
async def publisher_status(services: OracleRelayServices = Depends(get_services)):
    config = services.config_store.get()
    return {
        **services.scheduler.status(),
        "config": {
            "priority": config.priority.value,
            "enabled_providers": sorted(p.value for p in config.enabled_providers),
            "publish_interval_ms": config.publish_interval_ms,
            "symbol_delay_ms": config.symbol_delay_ms,
        },
    }


@router.post("/api/publisher/config", tags=["Publisher"])
async def update_publisher_config(body: ConfigUpdateRequest, services: OracleRelayServices = Depends(get_services)):
    changes = body.model_dump(exclude_none=True)
    if "enabled_providers" in changes:
        changes["enabled_providers"] = set(changes["enabled_providers"])
    config = services.config_store.update(**changes)
    return {
        "priority": config.priority.value,
        "enabled_providers": sorted(p.value for p in config.enabled_providers),
        "publish_interval_ms": config.publish_interval_ms,
        "symbol_delay_ms": config.symbol_delay_ms,
    }


# ─── Alerts ─────────────────────────────────────────────────────

@router.post("/api/alerts", tags=["Alerts"])
async def create_alert(body: CreateAlertRequest, services: OracleRelayServices = Depends(get_services)):
    threshold = parse_price(body.threshold_price, body.decimals)
    alert_id, tx_handle = await services.alert_store.create_alert(
        user_address=body.user_address,
        asset=body.asset,
        condition=body.condition,
        threshold_price=threshold,
        decimals=body.decimals,
    )
    return {"alert_id": alert_id, "tx_handle": tx_handle, "status": "ACTIVE"}


@router.get("/api/alerts", tags=["Alerts"])
async def list_active_alerts(
    asset: Optional[str] = Query(default=None),
    services: OracleRelayServices = Depends(get_services),
):
    alerts = await services.alert_store.get_active_alerts(asset)
    return {"alerts": [_alert_dict(a) for a in alerts], "count": len(alerts)}


@router.post("/api/alerts/check", tags=["Alerts"])
async def check_alerts(body: CheckAlertsRequest, services: OracleRelayServices = Depends(get_services)):
    if body.price is not None:
        price, decimals = parse_price(body.price, body.decimals), body.decimals
    else:
        reading = await services.aggregator.fetch_best(body.asset)
        price, decimals = reading.price, reading.decimals
    triggered = await services.evaluator.check_alerts(body.asset, price, decimals)
    return {
        "asset": normalize_symbol(body.asset),
        "price": str(price),
        "decimals": decimals,
        "triggered": triggered,
    }


@router.get("/api/alerts/triggered", tags=["Alerts"])
async def list_triggered_alerts(
    user: Optional[str] = Query(default=None),
    services: OracleRelayServices = Depends(get_services),
):
    alerts = await services.alert_store.get_triggered_alerts(user)
    return {"alerts": [_alert_dict(a) for a in alerts], "count": len(alerts)}


# ─── Error mapping ──────────────────────────────────────────────

def _install_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(NoProviderAvailable)
    async def no_provider_handler(request: Request, exc: NoProviderAvailable):
        return JSONResponse(status_code=404, content={"detail": str(exc), "errors": exc.errors})

    @app.exception_handler(ProviderError)
    async def provider_error_handler(request: Request, exc: ProviderError):
        return JSONResponse(status_code=502, content={"detail": str(exc), "provider": exc.provider})

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError):
        logger.error("ledger_error", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=502, content={"detail": str(exc)})

    @app.exception_handler(SchedulerAlreadyRunning)
    async def scheduler_running_handler(request: Request, exc: SchedulerAlreadyRunning):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})


def create_app(services: Optional[OracleRelayServices] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan: startup and shutdown."""
        app.state.services = services or OracleRelayServices(get_settings())
        app.state.started_at = utc_timestamp()
        settings = app.state.services.settings
        setup_logging(settings)

        logger.info("oracle_relay_starting", version=settings.version, instance=app.state.instance_id)
        await app.state.services.initialize()

        if settings.publisher.auto_publish:
            app.state.services.scheduler.start(app.state.services.default_symbols)

        logger.info("oracle_relay_ready")
        yield

        logger.info("oracle_relay_shutting_down")
        await app.state.services.shutdown()

    settings = get_settings()
    app = FastAPI(
        title=settings.app_name,
        description="Multi-source price relay with ledger publishing and threshold alerts",
        version=settings.version,
        lifespan=lifespan,
    )
    app.state.instance_id = str(uuid.uuid4())[:8]
    app.state.started_at = None
    app.include_router(router)
    _install_exception_handlers(app)
    return app


app = create_app()
