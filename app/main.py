import asyncio
import logging
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from supabase import Client

from app.config import settings
from app.core import http_client
from app.core.limiter import limiter
from app.database.supabase_client import get_supabase, find_missing_tables
from app.modules.auth import routes as auth_routes
from app.modules.companies import routes as companies_routes
from app.modules.products import routes as products_routes
from app.modules.rfqs import routes as rfqs_routes
from app.modules.quotes import routes as quotes_routes
from app.modules.trades import routes as trades_routes
from app.modules.trade_events import routes as trade_events_routes
from app.modules.documents import routes as documents_routes
from app.modules.escrow import routes as escrow_routes
from app.modules.shipments import routes as shipments_routes
from app.modules.notifications import routes as notifications_routes
from app.modules.payments import routes as payments_routes
from app.modules.ai import routes as ai_routes
from app.modules.verification import routes as verification_routes
from app.modules.weather import routes as weather_routes
from app.modules.dashboard import routes as dashboard_routes

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    redirect_slashes=False,
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception: %s", exc)
    if settings.is_production:
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})
    return JSONResponse(status_code=500, content={"detail": str(exc)})


class SecurityHeadersMiddleware:
    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_headers(message):
            if message["type"] == "http.response.start":
                message.setdefault("headers", [])
                message["headers"].extend([
                    (b"X-Content-Type-Options", b"nosniff"),
                    (b"X-Frame-Options", b"DENY"),
                    (b"X-XSS-Protection", b"1; mode=block"),
                ])
            await send(message)

        await self.app(scope, receive, send_with_headers)


app.add_middleware(SlowAPIMiddleware)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include module routes
app.include_router(auth_routes.router, prefix="/api/v1")
app.include_router(companies_routes.router, prefix="/api/v1")
app.include_router(products_routes.router, prefix="/api/v1")
app.include_router(rfqs_routes.router, prefix="/api/v1")
app.include_router(quotes_routes.router, prefix="/api/v1")
app.include_router(documents_routes.router, prefix="/api/v1")
app.include_router(trade_events_routes.router, prefix="/api/v1")
app.include_router(trades_routes.router, prefix="/api/v1")
app.include_router(escrow_routes.router, prefix="/api/v1")
app.include_router(shipments_routes.router, prefix="/api/v1")
app.include_router(notifications_routes.router, prefix="/api/v1")
app.include_router(dashboard_routes.router, prefix="/api/v1")

# Serverless-style function endpoints
app.include_router(trades_routes.functions_router, prefix="/api/v1")
app.include_router(notifications_routes.functions_router, prefix="/api/v1")
app.include_router(shipments_routes.functions_router, prefix="/api/v1")
app.include_router(payments_routes.functions_router, prefix="/api/v1")
app.include_router(ai_routes.functions_router, prefix="/api/v1")
app.include_router(verification_routes.functions_router, prefix="/api/v1")
app.include_router(weather_routes.functions_router, prefix="/api/v1")

# Vendor callbacks
app.include_router(payments_routes.webhooks_router, prefix="/api/v1")
app.include_router(verification_routes.webhooks_router, prefix="/api/v1")


@app.on_event("startup")
async def startup_event():
    logger.info("Application startup")
    if settings.enable_schedulers:
        from app.modules.rfqs.scheduler import rfq_expiry_loop
        app.state.rfq_expiry_task = asyncio.create_task(rfq_expiry_loop())
        logger.info(f"RFQ expiry scheduler started - checking every {settings.rfq_expiry_check_seconds}s")


@app.on_event("shutdown")
async def shutdown_event():
    task = getattr(app.state, "rfq_expiry_task", None)
    if task:
        task.cancel()
    await http_client.close_client()
    logger.info("Application shutdown")


@app.get("/")
async def root():
    return {"message": "Welcome to afrikoni-backend", "status": "healthy"}


@app.get("/health")
@limiter.exempt
async def health():
    return {"status": "healthy"}


@app.get("/ready")
@limiter.exempt
async def ready(supabase: Client = Depends(get_supabase)):
    """Readiness check: every core table must be reachable."""
    missing = find_missing_tables(supabase)
    if missing:
        logger.error(f"Schema check failed, missing tables: {missing}")
        return JSONResponse(status_code=503, content={"status": "not_ready", "missing_tables": missing})
    return {"status": "ready"}
