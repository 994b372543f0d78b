import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import Response

from app.core.config import settings
from app.core.database import SessionLocal
from app.routers import payment_methods, payments, settlements, subscriptions
from app.services.payment_provider import get_payment_provider
from app.services.settlement_scheduler import SettlementScheduler
from app.services.settlement_service import SettlementService

logger = logging.getLogger(__name__)

OPENAPI_TAGS = [
    {"name": "Payment Methods", "description": "Register and select billing keys."},
    {
        "name": "Subscriptions",
        "description": "Subscribe, pause, resume, change plan and cancel with refund.",
    },
    {"name": "Payments", "description": "Payment notifications from the provider."},
    {"name": "Settlements", "description": "Trigger the daily settlement sweep."},
]


def build_scheduler() -> SettlementScheduler:
    service = SettlementService(SessionLocal, get_payment_provider())
    return SettlementScheduler(service.run, run_at_startup=True)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    scheduler: SettlementScheduler | None = None
    if settings.in_process_settlement:
        scheduler = build_scheduler()
        scheduler.start()
    try:
        yield
    finally:
        if scheduler is not None:
            await scheduler.stop()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.version,
    description=(
        "Recurring subscription billing on billing-key card payments: "
        "cycles, daily settlement, payment notifications and prorated refunds."
    ),
    openapi_tags=OPENAPI_TAGS,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def options_handler(request: Request, call_next):  # type: ignore[no-untyped-def]
    if request.method == "OPTIONS":
        origin = request.headers.get("origin", "*")
        return Response(
            status_code=200,
            headers={
                "Access-Control-Allow-Origin": origin,
                "Access-Control-Allow-Methods": "*",
                "Access-Control-Allow-Headers": "*",
                "Access-Control-Allow-Credentials": "true",
                "Access-Control-Max-Age": "86400",
            },
        )
    return await call_next(request)


app.include_router(
    payment_methods.router,
    prefix="/v1/payment_methods",
    tags=["Payment Methods"],
)
app.include_router(subscriptions.router, prefix="/v1/subscriptions", tags=["Subscriptions"])
app.include_router(payments.router, prefix="/v1/payments", tags=["Payments"])
app.include_router(settlements.router, prefix="/v1/settlements", tags=["Settlements"])


@app.get("/")
async def root() -> dict[str, str]:
    return {
        "app": settings.APP_NAME,
        "version": settings.version,
        "domain": settings.APP_DOMAIN,
        "timezone": settings.BILLING_TIMEZONE,
        "status": "running",
    }
