from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from time import perf_counter
from typing import Any, Awaitable, Callable, Optional
from uuid import uuid4

import httpx
import uvicorn
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.middleware.cors import CORSMiddleware

from qbo_bridge.api import routes_auth, routes_custom_fields, routes_pages, routes_qbo
from qbo_bridge.api.deps import enforce_api_key
from qbo_bridge.core.config import get_settings
from qbo_bridge.core import logging as logging_utils
from qbo_bridge.services.auth import NotAuthenticatedError, QuickBooksOAuthClient, QuickBooksOAuthError, TokenStore
from qbo_bridge.services.custom_field_validation import CustomFieldValidationError, DefinitionCache
from qbo_bridge.services.custom_fields import CustomFieldsGraphQLError, CustomFieldsService
from qbo_bridge.services.entities import EntityRequestError
from qbo_bridge.services.qbo_client import QuickBooksApiError

RequestHandler = Callable[[Request], Awaitable[Response]]


@asynccontextmanager
async def lifespan(_: FastAPI):
    settings = get_settings()
    logging_utils.configure_logging(settings.log_level)
    logger = logging.getLogger("qbo_bridge.lifespan")
    logger.info(
        "application_startup",
        extra={"environment": settings.environment},
    )
    try:
        yield
    finally:
        logger.info("application_shutdown")


def _error_response(
    request: Request,
    status_code: int,
    message: str,
    details: Any = None,
) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    payload = {
        "code": status_code,
        "message": message,
        "details": details,
        "correlation_id": request_id,
    }
    response = JSONResponse(status_code=status_code, content=payload)
    if request_id:
        response.headers["X-Request-Id"] = request_id
    return response


def create_app(transport: Optional[httpx.AsyncBaseTransport] = None) -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        title="QBO Bridge",
        version=settings.app_version,
        lifespan=lifespan,
    )

    token_store = TokenStore()
    definitions_provider = CustomFieldsService(
        QuickBooksOAuthClient(token_store, settings, transport),
        settings,
        transport,
    )
    app.state.token_store = token_store
    app.state.upstream_transport = transport
    app.state.definition_cache = DefinitionCache(definitions_provider.fetch_definitions)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next: RequestHandler):
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        logging_utils.set_request_context(request_id=request_id)
        start = perf_counter()
        logger = logging.getLogger("qbo_bridge.request")
        request.state.response_status = None
        try:
            response = await call_next(request)
            request.state.response_status = response.status_code
            response.headers["X-Request-Id"] = request_id
            return response
        except Exception:
            request.state.response_status = status.HTTP_500_INTERNAL_SERVER_ERROR
            raise
        finally:
            duration_ms = (perf_counter() - start) * 1000
            logger.info(
                "request_completed",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status": request.state.response_status,
                    "duration_ms": round(duration_ms, 2),
                },
            )
            logging_utils.clear_request_context()

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        if isinstance(exc.detail, str):
            return _error_response(request, exc.status_code, exc.detail)
        return _error_response(request, exc.status_code, "Request failed", exc.detail)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return _error_response(
            request,
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "Validation error",
            exc.errors(),
        )

    @app.exception_handler(CustomFieldValidationError)
    async def custom_field_validation_handler(
        request: Request, exc: CustomFieldValidationError
    ) -> JSONResponse:
        return _error_response(
            request,
            status.HTTP_400_BAD_REQUEST,
            "Custom field validation failed",
            exc.errors,
        )

    @app.exception_handler(EntityRequestError)
    async def entity_request_handler(request: Request, exc: EntityRequestError) -> JSONResponse:
        return _error_response(request, status.HTTP_400_BAD_REQUEST, str(exc))

    @app.exception_handler(NotAuthenticatedError)
    async def not_authenticated_handler(request: Request, exc: NotAuthenticatedError) -> JSONResponse:
        return _error_response(request, status.HTTP_401_UNAUTHORIZED, str(exc))

    @app.exception_handler(QuickBooksApiError)
    async def qbo_api_error_handler(request: Request, exc: QuickBooksApiError) -> JSONResponse:
        return _error_response(
            request,
            status.HTTP_502_BAD_GATEWAY,
            f"QuickBooks API error: {exc}",
            {"qbo_status_code": exc.status_code},
        )

    @app.exception_handler(CustomFieldsGraphQLError)
    async def graphql_error_handler(request: Request, exc: CustomFieldsGraphQLError) -> JSONResponse:
        return _error_response(
            request,
            status.HTTP_502_BAD_GATEWAY,
            "Custom field definitions request failed",
            exc.errors or str(exc),
        )

    @app.exception_handler(QuickBooksOAuthError)
    async def oauth_error_handler(request: Request, exc: QuickBooksOAuthError) -> JSONResponse:
        return _error_response(request, status.HTTP_502_BAD_GATEWAY, str(exc))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger = logging.getLogger("qbo_bridge.errors")
        logger.exception(
            "unhandled_error",
            extra={"correlation_id": getattr(request.state, "request_id", None)},
        )
        return _error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Internal server error",
        )

    if not settings.allow_docs_without_auth:
        app.dependencies.append(Depends(enforce_api_key))

    protected_router = APIRouter(dependencies=[Depends(enforce_api_key)])
    protected_router.include_router(routes_auth.router)
    protected_router.include_router(routes_custom_fields.router)
    protected_router.include_router(routes_qbo.router)
    app.include_router(protected_router)
    app.include_router(routes_auth.public_router)
    app.include_router(routes_pages.router)
    app.mount(
        "/pages",
        StaticFiles(directory=settings.pages_dir, check_dir=False),
        name="pages",
    )

    @app.get("/health", include_in_schema=False)
    async def health() -> dict[str, str]:
        return {"status": "ok", "version": settings.app_version}

    return app


app = create_app()


def run() -> None:
    uvicorn.run(
        "qbo_bridge.main:app",
        host="0.0.0.0",
        port=8000,
        reload=False,
        factory=False,
    )


if __name__ == "__main__":
    run()
