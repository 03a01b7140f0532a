"""
DocShield Gateway API

Authenticated HTTP routes in front of the safety gateway.
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .auth import AuthenticationError, get_tenant_context_dependency
from .config import MAX_INPUT_SIZE
from .errors import CrossTenantAccessError, GatewayError, InputTooLargeError, TenantError
from .gateway import SafetyGateway
from .models import (
    AnalysisRequest,
    AnalysisResponse,
    AnalyzeDocumentBody,
    AnalyzeTextBody,
    CheckSafetyBody,
    CheckSafetyResponse,
    ErrorResponse,
    TextAnalysisRequest,
    TextAnalysisResponse,
)
from .tenant import TenantContext, tenant_scope

logger = logging.getLogger(__name__)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    413: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


class InvalidRequestError(Exception):
    """A request body that is well-formed JSON but unusable."""

    def __init__(self, code: str, message: str, status_code: int = 400):
        self.code = code
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def _error(status_code: int, message: str, code: str, headers: Optional[dict] = None):
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=message, code=code).model_dump(),
        headers=headers,
    )


def _require_text(value: str, field_name: str) -> str:
    if not value or not value.strip():
        raise InvalidRequestError("missing_field", f"{field_name} is required")
    if len(value.encode("utf-8", errors="ignore")) > MAX_INPUT_SIZE:
        raise InputTooLargeError()
    return value


def _parse_document_id(value: Optional[str]) -> Optional[uuid.UUID]:
    if not value:
        return None
    try:
        return uuid.UUID(value)
    except ValueError:
        raise InvalidRequestError("invalid_field", "document_id must be a UUID") from None


def register_exception_handlers(app: FastAPI) -> None:
    """Translate every failure into the ``{"error", "code"}`` body."""

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError):
        return _error(exc.status_code, exc.message, exc.code)

    @app.exception_handler(AuthenticationError)
    async def authentication_error_handler(request: Request, exc: AuthenticationError):
        return _error(
            status.HTTP_401_UNAUTHORIZED,
            "unauthorized",
            "unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )

    @app.exception_handler(TenantError)
    async def tenant_error_handler(request: Request, exc: TenantError):
        if isinstance(exc, CrossTenantAccessError):
            return _error(status.HTTP_403_FORBIDDEN, "cross-tenant access", "cross_tenant_access")
        return _error(status.HTTP_401_UNAUTHORIZED, "unauthorized", "unauthorized")

    @app.exception_handler(InvalidRequestError)
    async def invalid_request_handler(request: Request, exc: InvalidRequestError):
        return _error(exc.status_code, exc.message, exc.code)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return _error(status.HTTP_400_BAD_REQUEST, "invalid request body", "invalid_request")

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.url.path}: {type(exc).__name__}")
        return _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "an unexpected error occurred", "internal_error"
        )


class AIRouter:
    """AI analysis routes. All of them require a tenant bearer token."""

    def __init__(self, gateway: SafetyGateway):
        self.gateway = gateway
        self.router = APIRouter(
            prefix="/ai",
            tags=["ai"],
            dependencies=[Depends(get_tenant_context_dependency)],
            responses=ERROR_RESPONSES,
        )
        self._setup_routes()

    def _setup_routes(self):
        """Setup API routes."""

        @self.router.post("/analyze", response_model=AnalysisResponse)
        async def analyze_document(
            body: AnalyzeDocumentBody,
            context: TenantContext = Depends(get_tenant_context_dependency),
        ):
            """Analyze a document through the safety gateway."""
            request = AnalysisRequest(
                document_id=_parse_document_id(body.document_id),
                document_text=_require_text(body.document_text, "document_text"),
                document_type=body.document_type,
                prompt=body.prompt,
                tenant_id=context.tenant_id,
                user_id=context.user_id,
            )

            with tenant_scope(context.tenant_id, context.user_id):
                return await self.gateway.analyze(request)

        @self.router.post("/analyze/text", response_model=TextAnalysisResponse)
        async def analyze_text(
            body: AnalyzeTextBody,
            context: TenantContext = Depends(get_tenant_context_dependency),
        ):
            """Analyze free text through the safety gateway."""
            request = TextAnalysisRequest(
                text=_require_text(body.text, "text"),
                prompt=body.prompt,
                tenant_id=context.tenant_id,
                user_id=context.user_id,
            )

            with tenant_scope(context.tenant_id, context.user_id):
                return await self.gateway.analyze_text(request)

        @self.router.post(
            "/check-safety",
            response_model=CheckSafetyResponse,
            response_model_exclude_none=True,
        )
        async def check_safety(body: CheckSafetyBody):
            """Preflight a text without calling the model."""
            result = self.gateway.check_input_safety(_require_text(body.text, "text"))

            return CheckSafetyResponse(
                safe=not result.was_filtered,
                was_truncated=result.was_truncated,
                was_filtered=result.was_filtered,
                filtered_count=result.filtered_count,
                original_length=result.original_length,
                sanitized_length=result.sanitized_length,
                sanitized_text=result.text if result.changed else None,
            )
