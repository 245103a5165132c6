"""FastAPI application factory"""

import asyncio
import logging
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from ramp_gateway.api.middleware import RequestIDMiddleware, MetricsMiddleware
from ramp_gateway.api.dependencies import get_paystack_client, get_price_feed, get_sui_client
from ramp_gateway.api.v1 import limits, prices, transactions, treasury, wallet, webhooks
from ramp_gateway.domain.exceptions import (
    AuthorizationError,
    DomainException,
    InsufficientFundsError,
    NotFoundError,
    PayoutRejectedError,
    StateConflictError,
    TokenCreditError,
    UpstreamUnavailableError,
    ValidationError,
)
from ramp_gateway.domain.models import TokenSymbol
from ramp_gateway.infrastructure.clients.paystack import PaystackClient
from ramp_gateway.infrastructure.clients.prices import PriceFeedClient
from ramp_gateway.infrastructure.clients.sui_rpc import SuiRpcClient
from ramp_gateway.infrastructure.observability.logging import setup_logging
from ramp_gateway.config import settings

# Setup structured logging
setup_logging(settings.log_level, service=settings.service_name)

# Most specific first
ERROR_STATUS = (
    (ValidationError, 422),
    (InsufficientFundsError, 422),
    (NotFoundError, 404),
    (StateConflictError, 409),
    (AuthorizationError, 403),
    (UpstreamUnavailableError, 503),
    (PayoutRejectedError, 502),
    (TokenCreditError, 502),
)


def status_for(exc: DomainException) -> int:
    for exc_type, status in ERROR_STATUS:
        if isinstance(exc, exc_type):
            return status
    return 500


async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    """Render domain errors as {"code", "detail"} with the mapped status"""
    status = status_for(exc)
    log = logging.error if status >= 500 else logging.warning
    log(
        f"{exc.__class__.__name__}: {exc.message}",
        extra={"request_id": getattr(request.state, "request_id", "unknown"), "code": exc.code},
    )
    return JSONResponse(status_code=status, content={"code": exc.code, "detail": exc.message})


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Ramp Gateway",
        description="Crypto on/off-ramp transaction lifecycle and treasury service",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(DomainException, domain_exception_handler)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    @app.get("/health/dependencies")
    async def dependency_health(
        rpc: SuiRpcClient = Depends(get_sui_client),
        paystack: PaystackClient = Depends(get_paystack_client),
        price_feed: PriceFeedClient = Depends(get_price_feed),
    ):
        """Probe every upstream concurrently; one failure never hides the others"""
        probes = {
            "sui_rpc": rpc.get_latest_checkpoint(),
            "paystack": paystack.get_balance(),
            "price_feed": price_feed.get_price(TokenSymbol.SUI),
        }
        results = await asyncio.gather(*probes.values(), return_exceptions=True)

        checks = {}
        for name, result in zip(probes, results):
            if isinstance(result, Exception):
                checks[name] = {"status": "down", "error": getattr(result, "message", None) or repr(result)}
            elif getattr(result, "degraded", False):
                checks[name] = {"status": "degraded", "source": result.source}
            else:
                checks[name] = {"status": "ok"}

        overall = "ok" if all(check["status"] == "ok" for check in checks.values()) else "degraded"
        return {"status": overall, "service": settings.service_name, "dependencies": checks}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(wallet.router, prefix="/v1", tags=["wallet"])
    app.include_router(prices.router, prefix="/v1", tags=["prices"])
    app.include_router(transactions.router, prefix="/v1", tags=["transactions"])
    app.include_router(limits.router, prefix="/v1", tags=["limits"])
    app.include_router(treasury.router, prefix="/v1", tags=["treasury"])
    app.include_router(webhooks.router, prefix="/v1", tags=["webhooks"])

    return app


app = create_app()
