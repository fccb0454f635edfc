"""FastAPI application exposing the VerseFeed API.

Routes are thin: they resolve the caller, hand off to a service and let
the registered exception handlers turn domain errors into
``{"error": ...}`` responses.

Example:
    >>> from versefeed.server import create_app
    >>> app = create_app()
    >>> # uvicorn versefeed.server:app
"""

import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, Response
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import Headers

from versefeed import __version__
from versefeed.config import settings
from versefeed.database import DatabaseManager
from versefeed.identity import TokenIdentityResolver
from versefeed.interfaces import (
    IDatabaseManager,
    IFileStorage,
    IIdentityResolver,
    IPaymentBridge,
)
from versefeed.logging import bind_caller, logger, request_context
from versefeed.metrics import (
    METRICS_CONTENT_TYPE,
    errors_total,
    generate_metrics_output,
    http_request_duration_seconds,
    http_requests_total,
)
from versefeed.models import (
    SUBSCRIPTION_PLANS,
    CreatePoemRequest,
    Poem,
    SubscriptionPlan,
    UpdateProfileRequest,
    UserProfile,
)
from versefeed.payments import PaymentBridge, PaymentError, parse_json_body
from versefeed.services import (
    AuthorizationError,
    PoemService,
    ProfileService,
    ProfileUpdateError,
    VisitorService,
)
from versefeed.storage import (
    LocalFileStorage,
    StoredFileNotFoundError,
    UploadRejectedError,
    read_upload,
)

PAYMENT_ROUTES = ("/create-razorpay-order", "/create-razorpay-subscription")

PAYMENT_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}


class PreflightCORSMiddleware(CORSMiddleware):
    """CORSMiddleware that answers accepted preflights with 204 No Content."""

    def preflight_response(self, request_headers: Headers) -> Response:
        response = super().preflight_response(request_headers)
        if response.status_code != 200:
            return response
        headers = {
            key: value
            for key, value in response.headers.items()
            if key not in ("content-length", "content-type")
        }
        return Response(status_code=204, headers=headers)


# =============================================================================
# Dependencies
# =============================================================================


async def get_caller_id(
    request: Request,
    authorization: Optional[str] = Header(None),
) -> Optional[int]:
    """Resolve the bearer token to a user id; None for anonymous callers."""
    user_id = request.app.state.identity.resolve(authorization)
    bind_caller(user_id)
    return user_id


# =============================================================================
# Exception Handlers
# =============================================================================


def _error(status_code: int, message: str, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code, headers=headers)


async def authorization_error_handler(request: Request, exc: AuthorizationError) -> JSONResponse:
    return _error(401, str(exc))


async def profile_update_error_handler(request: Request, exc: ProfileUpdateError) -> JSONResponse:
    return _error(500, str(exc))


async def upload_rejected_handler(request: Request, exc: UploadRejectedError) -> JSONResponse:
    errors_total.labels(error_type="UploadRejectedError", component="storage").inc()
    logger.warning(f"Upload rejected: {exc}")
    return _error(400, str(exc))


async def stored_file_not_found_handler(
    request: Request, exc: StoredFileNotFoundError
) -> JSONResponse:
    return _error(404, "File not found")


async def payment_error_handler(request: Request, exc: PaymentError) -> JSONResponse:
    return JSONResponse(
        exc.to_body(),
        status_code=exc.status_code,
        headers=PAYMENT_CORS_HEADERS,
    )


# =============================================================================
# Application Factory
# =============================================================================


def create_app(
    db: IDatabaseManager | None = None,
    identity: IIdentityResolver | None = None,
    storage: IFileStorage | None = None,
    payments: IPaymentBridge | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Collaborators default to the production implementations. A database
    passed in is expected to be initialized already and is left open on
    shutdown; a database created here is initialized and closed by the
    application lifespan.

    Args:
        db: Database manager
        identity: Bearer-token resolver
        storage: Blob store for profile pictures
        payments: Payment bridge

    Returns:
        Configured FastAPI application
    """
    owns_db = db is None
    db = db or DatabaseManager()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if owns_db:
            db.initialize()
        logger.info(f"VerseFeed API {__version__} starting ({settings.environment})")
        yield
        if owns_db:
            db.close()
        logger.info("VerseFeed API stopped")

    app = FastAPI(title="VerseFeed API", version=__version__, lifespan=lifespan)

    app.state.db = db
    app.state.identity = identity or TokenIdentityResolver()
    app.state.storage = storage or LocalFileStorage(db)
    app.state.payments = payments or PaymentBridge()
    app.state.poems = PoemService(db)
    app.state.profiles = ProfileService(db)
    app.state.visitors = VisitorService(db)

    @app.middleware("http")
    async def tag_request(request: Request, call_next: Any) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        start = time.perf_counter()
        with request_context(request_id, f"{request.method} {request.url.path}"):
            response = await call_next(request)

        route = request.scope.get("route")
        path = getattr(route, "path", "unmatched")
        labels = {"status": str(response.status_code), "path": path, "method": request.method}
        http_requests_total.labels(**labels).inc()
        http_request_duration_seconds.labels(**labels).observe(time.perf_counter() - start)

        response.headers["X-Request-ID"] = request_id
        return response

    app.add_middleware(
        PreflightCORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=settings.cors_max_age,
    )

    app.add_exception_handler(AuthorizationError, authorization_error_handler)
    app.add_exception_handler(ProfileUpdateError, profile_update_error_handler)
    app.add_exception_handler(UploadRejectedError, upload_rejected_handler)
    app.add_exception_handler(StoredFileNotFoundError, stored_file_not_found_handler)
    app.add_exception_handler(PaymentError, payment_error_handler)

    # -------------------------------------------------------------------------
    # Poems
    # -------------------------------------------------------------------------

    @app.get("/api/poems", response_model=list[Poem])
    def list_public_poems(request: Request) -> list[Poem]:
        return request.app.state.poems.list_public_poems()

    @app.post("/api/poems")
    def create_poem(
        body: CreatePoemRequest,
        request: Request,
        caller_id: Optional[int] = Depends(get_caller_id),
    ) -> dict[str, int]:
        return {"id": request.app.state.poems.create_poem(body, caller_id)}

    # -------------------------------------------------------------------------
    # Visitor counter
    # -------------------------------------------------------------------------

    @app.get("/api/visitors")
    def get_visitor_count(request: Request) -> dict[str, int]:
        return {"count": request.app.state.visitors.get_visitor_count()}

    @app.post("/api/visitors")
    def increment_visitor_count(request: Request) -> dict[str, int]:
        return {"count": request.app.state.visitors.increment_visitor_count()}

    # -------------------------------------------------------------------------
    # Profiles
    # -------------------------------------------------------------------------

    @app.get("/api/profile", response_model=Optional[UserProfile])
    def get_user_profile(
        request: Request,
        caller_id: Optional[int] = Depends(get_caller_id),
    ) -> Optional[UserProfile]:
        return request.app.state.profiles.get_user_profile(caller_id)

    @app.get("/api/me", response_model=Optional[UserProfile])
    def logged_in_user(
        request: Request,
        caller_id: Optional[int] = Depends(get_caller_id),
    ) -> Optional[UserProfile]:
        return request.app.state.profiles.get_user_profile(caller_id)

    @app.put("/api/profile")
    def update_profile(
        body: UpdateProfileRequest,
        request: Request,
        caller_id: Optional[int] = Depends(get_caller_id),
    ) -> dict[str, bool]:
        return request.app.state.profiles.update_profile(body, caller_id)

    # -------------------------------------------------------------------------
    # File storage
    # -------------------------------------------------------------------------

    @app.post("/api/files/upload-url")
    def generate_upload_url(request: Request) -> dict[str, str]:
        return {"uploadUrl": request.app.state.storage.generate_upload_url(str(request.base_url))}

    @app.post("/api/files/upload/{token}")
    async def upload_file(token: str, request: Request) -> dict[str, str]:
        storage = request.app.state.storage
        data = await read_upload(
            request.stream(), storage.max_bytes, request.headers.get("content-length")
        )
        storage_id = await run_in_threadpool(
            storage.store,
            token,
            data,
            request.headers.get("content-type"),
        )
        return {"storageId": storage_id}

    @app.get("/api/files/{storage_id}")
    def get_file(storage_id: str, request: Request) -> FileResponse:
        path, content_type = request.app.state.storage.open(storage_id)
        return FileResponse(path, media_type=content_type)

    # -------------------------------------------------------------------------
    # Payments
    # -------------------------------------------------------------------------

    @app.get("/api/subscription-plans", response_model=list[SubscriptionPlan])
    def list_subscription_plans() -> list[SubscriptionPlan]:
        return list(SUBSCRIPTION_PLANS)

    @app.post(PAYMENT_ROUTES[0])
    async def create_razorpay_order(request: Request) -> JSONResponse:
        body = parse_json_body(await request.body())
        order = await request.app.state.payments.create_order(body)
        return JSONResponse(order, headers=PAYMENT_CORS_HEADERS)

    @app.post(PAYMENT_ROUTES[1])
    async def create_razorpay_subscription(request: Request) -> JSONResponse:
        body = parse_json_body(await request.body())
        subscription = await request.app.state.payments.create_subscription(body)
        return JSONResponse(subscription, headers=PAYMENT_CORS_HEADERS)

    async def payment_options() -> Response:
        return Response(
            status_code=204,
            headers={**PAYMENT_CORS_HEADERS, "Access-Control-Max-Age": str(settings.cors_max_age)},
        )

    for path in PAYMENT_ROUTES:
        app.add_api_route(path, payment_options, methods=["OPTIONS"], include_in_schema=False)

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    @app.get("/health")
    def health(request: Request) -> JSONResponse:
        try:
            database_ok = request.app.state.db.ping()
        except (SQLAlchemyError, RuntimeError) as exc:
            logger.error(f"Health check failed: {exc}")
            database_ok = False
        return JSONResponse(
            {
                "status": "ok" if database_ok else "degraded",
                "database": "ok" if database_ok else "unavailable",
                "version": __version__,
            },
            status_code=200 if database_ok else 503,
        )

    @app.get("/metrics", include_in_schema=False)
    def metrics() -> Response:
        return Response(generate_metrics_output(), media_type=METRICS_CONTENT_TYPE)

    return app


app = create_app()


__all__ = ["app", "create_app", "PreflightCORSMiddleware", "get_caller_id"]
