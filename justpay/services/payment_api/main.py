"""HTTP surface for payment links, rent payments and landlord accounts.

Run with `uvicorn justpay.services.payment_api.main:app`.
"""

from datetime import datetime, timezone
from time import perf_counter
from uuid import uuid4

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from justpay.common.config import AppSettings, settings as default_settings
from justpay.common.logging import account_id_ctx, configure_logging, logger, trace_id_ctx
from justpay.common.metrics import (
    http_request_duration_seconds,
    http_requests_total,
    metrics_response,
)
from justpay.common.startup import log_startup_config
from justpay.common.tracing import instrument_app, setup_tracing
from justpay.services.payment_api.errors import (
    InvalidArgumentError,
    PaymentValidationError,
    ProviderError,
    WebhookSignatureError,
)
from justpay.services.payment_api.provider import ProviderConfig, StripeProvider
from justpay.services.payment_api.schemas import (
    AccountIdRequest,
    LandlordAccountCreateRequest,
    PaymentLinkCreateRequest,
    PayoutScheduleRequest,
    RentPaymentCreateRequest,
)
from justpay.services.payment_api.service import API_PREFIX, PaymentService

# Route name -> error title for provider failures.
PROVIDER_FAILURE_TITLES = {
    "create_payment_link": "Payment link creation failed",
    "get_payment_link": "Failed to retrieve payment link",
    "list_payment_links": "Failed to retrieve payment links",
    "deactivate_payment_link": "Failed to deactivate payment link",
    "create_landlord_account": "Failed to create landlord account",
    "landlord_onboarding_link": "Failed to create onboarding link",
    "create_rent_payment": "Rent payment creation failed",
    "get_landlord_account": "Failed to retrieve landlord account",
    "landlord_dashboard_link": "Failed to create dashboard link",
    "landlord_setup_payouts": "Failed to setup payouts",
    "landlord_payout_history": "Failed to retrieve payout history",
}
NOT_FOUND_MESSAGES = {
    "get_payment_link": ("Payment link not found", "The specified payment link does not exist"),
    "deactivate_payment_link": ("Payment link not found", "The specified payment link does not exist"),
    "get_landlord_account": ("Landlord account not found", "The specified landlord account does not exist"),
    "landlord_payout_history": ("Landlord account not found", "The specified landlord account does not exist"),
}

router = APIRouter(prefix=API_PREFIX)


def get_service(request: Request) -> PaymentService:
    return request.app.state.payment_service


def _base_url(request: Request) -> str:
    configured = request.app.state.settings.public_base_url
    return (configured or str(request.base_url)).rstrip("/")


def _route_name(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "name", "") or ""


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _validation_body(fields: list[dict[str, str]]) -> dict:
    return {
        "success": False,
        "error": "Validation failed",
        "message": "; ".join(f"{f['field']}: {f['message']}" for f in fields),
        "fields": fields,
    }


@router.post("/create-payment-link", status_code=201)
def create_payment_link(
    req: PaymentLinkCreateRequest, request: Request, service: PaymentService = Depends(get_service)
):
    """Create a product, a price and a shareable payment link."""

    return service.create_payment_link(req, _base_url(request))


@router.get("/payment-link/{link_id}")
def get_payment_link(link_id: str, service: PaymentService = Depends(get_service)):
    return service.get_payment_link(link_id)


@router.get("/payment-links")
def list_payment_links(
    limit: int = Query(default=10, ge=1, le=100),
    starting_after: str | None = Query(default=None),
    service: PaymentService = Depends(get_service),
):
    """Paginated payment links, newest first."""

    return service.list_payment_links(limit, starting_after)


@router.patch("/payment-link/{link_id}/deactivate")
def deactivate_payment_link(link_id: str, service: PaymentService = Depends(get_service)):
    return service.deactivate_payment_link(link_id)


@router.get("/success")
def payment_success():
    return {"success": True, "message": "Payment completed successfully!", "timestamp": _timestamp()}


@router.get("/cancel")
def payment_cancel():
    return {"success": False, "message": "Payment was cancelled", "timestamp": _timestamp()}


@router.post("/webhook")
async def webhook(request: Request, service: PaymentService = Depends(get_service)):
    """Verify the `stripe-signature` header and acknowledge the event."""

    payload = await request.body()
    return service.handle_webhook(payload, request.headers.get("stripe-signature"))


@router.post("/create-landlord-account", status_code=201)
def create_landlord_account(req: LandlordAccountCreateRequest, service: PaymentService = Depends(get_service)):
    """Create a Connect Express account able to receive rent transfers."""

    return service.create_landlord_account(req)


@router.post("/landlord-onboarding-link")
def landlord_onboarding_link(
    req: AccountIdRequest, request: Request, service: PaymentService = Depends(get_service)
):
    account_id_ctx.set(req.account_id)
    return service.create_onboarding_link(req.account_id, _base_url(request))


@router.post("/create-rent-payment", status_code=201)
def create_rent_payment(
    req: RentPaymentCreateRequest, request: Request, service: PaymentService = Depends(get_service)
):
    """Create a payment link that routes funds to the landlord minus the platform fee."""

    account_id_ctx.set(req.landlord_account_id if isinstance(req.landlord_account_id, str) else "")
    return service.create_rent_payment(req, _base_url(request))


@router.get("/landlord-account/{account_id}")
def get_landlord_account(account_id: str, service: PaymentService = Depends(get_service)):
    """Account status plus available/pending balance."""

    account_id_ctx.set(account_id)
    return service.get_landlord_account(account_id)


@router.post("/landlord-dashboard-link")
def landlord_dashboard_link(req: AccountIdRequest, service: PaymentService = Depends(get_service)):
    account_id_ctx.set(req.account_id)
    return service.create_dashboard_link(req.account_id)


@router.post("/landlord-setup-payouts")
def landlord_setup_payouts(req: PayoutScheduleRequest, service: PaymentService = Depends(get_service)):
    account_id_ctx.set(req.account_id)
    return service.setup_payouts(req.account_id, req.payout_schedule)


@router.get("/landlord-payout-history/{account_id}")
def landlord_payout_history(
    account_id: str,
    limit: int = Query(default=10, ge=1, le=100),
    service: PaymentService = Depends(get_service),
):
    account_id_ctx.set(account_id)
    return service.payout_history(account_id, limit)


@router.get("/onboarding-complete")
def onboarding_complete():
    return {
        "success": True,
        "message": "Landlord account setup completed successfully!",
        "nextSteps": [
            "Account is now ready to receive rent payments",
            "You can access your dashboard to view payments and payouts",
            "Set up your properties and share payment links with tenants",
        ],
    }


@router.get("/rent-payment-success")
def rent_payment_success():
    return {
        "success": True,
        "message": "Rent payment completed successfully!",
        "note": "Payment has been sent directly to your landlord",
    }


@router.get("/reauth")
def reauth():
    return {
        "success": False,
        "message": "Please complete your account setup",
        "action": "Contact support if you continue to have issues",
    }


def register_error_handlers(app: FastAPI) -> None:
    """Map the error taxonomy onto `{success: false, error, message}` bodies."""

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        fields = []
        for err in exc.errors():
            loc = [str(part) for part in err.get("loc", ())]
            if loc and loc[0] in {"body", "query", "path", "header"}:
                loc = loc[1:]
            fields.append({"field": ".".join(loc) or "body", "message": err.get("msg", "invalid value")})
        logger.warning("request validation failed route=%s fields=%s", _route_name(request), fields)
        return JSONResponse(status_code=400, content=_validation_body(fields))

    @app.exception_handler(PaymentValidationError)
    async def payment_validation_handler(request: Request, exc: PaymentValidationError):
        fields = [v.to_dict() for v in exc.violations]
        logger.warning("payment validation failed route=%s fields=%s", _route_name(request), fields)
        return JSONResponse(status_code=400, content=_validation_body(fields))

    @app.exception_handler(InvalidArgumentError)
    async def invalid_argument_handler(request: Request, exc: InvalidArgumentError):
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Invalid argument", "message": str(exc)},
        )

    @app.exception_handler(ProviderError)
    async def provider_error_handler(request: Request, exc: ProviderError):
        route_name = _route_name(request)
        if exc.not_found:
            title, message = NOT_FOUND_MESSAGES.get(route_name, ("Resource not found", exc.message))
            return JSONResponse(
                status_code=404,
                content={"success": False, "error": title, "message": message},
            )
        return JSONResponse(
            status_code=502,
            content={
                "success": False,
                "error": PROVIDER_FAILURE_TITLES.get(route_name, "Payment provider error"),
                "message": exc.message,
                "type": exc.error_type,
            },
        )

    @app.exception_handler(WebhookSignatureError)
    async def webhook_signature_handler(request: Request, exc: WebhookSignatureError):
        logger.warning("webhook rejected: %s", exc)
        return PlainTextResponse(status_code=400, content=f"Webhook Error: {exc}")

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404 and request.scope.get("route") is None:
            return JSONResponse(
                status_code=404,
                content={
                    "success": False,
                    "error": "Route not found",
                    "message": f"Cannot {request.method} {request.url.path}",
                },
            )
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": str(exc.detail), "message": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("unhandled error route=%s: %s", _route_name(request), exc)
        content = {
            "success": False,
            "error": "Internal Server Error",
            "message": str(exc) if request.app.state.settings.is_development else "Something went wrong",
        }
        return JSONResponse(status_code=500, content=content)


def create_app(settings: AppSettings | None = None, provider: StripeProvider | None = None) -> FastAPI:
    """Build the FastAPI app with an explicitly injected provider."""

    settings = settings or default_settings
    configure_logging(settings.service_name, settings.log_level)
    tracing_enabled = setup_tracing(settings.service_name, settings.otel_exporter_otlp_endpoint)
    log_startup_config(
        settings,
        [
            "environment",
            "stripe_secret_key",
            "stripe_webhook_secret",
            "allowed_origins",
            "public_base_url",
            "platform_fee_percentage",
        ],
    )
    if provider is None:
        provider = StripeProvider(ProviderConfig.from_settings(settings))

    app = FastAPI(title="JustPay Payment API")
    app.state.settings = settings
    app.state.payment_service = PaymentService(
        provider,
        fee_percentage=settings.platform_fee_percentage,
        service_name=settings.service_name,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        """Set the trace id and record request count and latency for every HTTP call."""

        trace_id = request.headers.get("x-correlation-id") or str(uuid4())
        trace_id_ctx.set(trace_id)
        start = perf_counter()
        route = request.url.path
        method = request.method
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            route_obj = request.scope.get("route")
            if route_obj is not None and getattr(route_obj, "path", None):
                route = route_obj.path
            response.headers["x-correlation-id"] = trace_id
            return response
        finally:
            elapsed = max(0.0, perf_counter() - start)
            http_request_duration_seconds.labels(
                service=settings.service_name,
                route=route,
                method=method,
            ).observe(elapsed)
            http_requests_total.labels(
                service=settings.service_name,
                route=route,
                method=method,
                status_code=str(status_code),
            ).inc()

    register_error_handlers(app)
    app.include_router(router)

    @app.get("/health")
    def health():
        """Container health check endpoint."""

        return {"status": "OK", "message": "JustPay Backend is running", "timestamp": _timestamp()}

    @app.get("/metrics")
    def metrics():
        """Prometheus scrape endpoint."""

        return metrics_response()

    if tracing_enabled:
        instrument_app(app)
    return app


app = create_app()
