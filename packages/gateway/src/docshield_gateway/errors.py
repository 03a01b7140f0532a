"""
Error taxonomy for DocShield Gateway

Stable error categories shared by the gateway, the tenant layer and the
HTTP surface.
"""

from enum import Enum
from typing import Optional


class ErrorCategory(str, Enum):
    """Stable error categories (not type names)."""

    INPUT_TOO_LARGE = "InputTooLarge"
    DANGEROUS_CONTENT = "DangerousContent"
    SENSITIVE_DATA_LEAK = "SensitiveDataLeak"
    OUTPUT_VALIDATION_FAILED = "OutputValidationFailed"
    AI_REQUEST_FAILED = "AIRequestFailed"
    INTERNAL = "Internal"


class GatewayError(Exception):
    """Base class for all gateway failures.

    ``message`` is short and safe to show to clients. ``detail`` may carry
    the underlying cause and is only used for audit and operational logs.
    """

    category: ErrorCategory = ErrorCategory.INTERNAL
    status_code: int = 500
    code: str = "internal_error"
    message: str = "an unexpected error occurred"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail
        super().__init__(detail or self.message)


class InputTooLargeError(GatewayError):
    category = ErrorCategory.INPUT_TOO_LARGE
    status_code = 413
    code = "input_too_large"
    message = "input exceeds maximum size limit"


class DangerousContentError(GatewayError):
    category = ErrorCategory.DANGEROUS_CONTENT
    status_code = 400
    code = "dangerous_content"
    message = "input contains potentially dangerous content"


class SensitiveDataLeakError(GatewayError):
    category = ErrorCategory.SENSITIVE_DATA_LEAK
    status_code = 500
    code = "sensitive_data_leak"
    message = "AI output contained sensitive data"


class OutputValidationError(GatewayError):
    category = ErrorCategory.OUTPUT_VALIDATION_FAILED
    status_code = 500
    code = "validation_failed"
    message = "AI output validation failed"


class AIRequestFailedError(GatewayError):
    category = ErrorCategory.AI_REQUEST_FAILED
    status_code = 503
    code = "ai_unavailable"
    message = "AI service temporarily unavailable"


class InternalGatewayError(GatewayError):
    """Catch-all for failures outside the taxonomy."""


class UpstreamError(Exception):
    """Raised by LLM adapters when the upstream call itself fails."""


class TenantError(Exception):
    """Base class for tenant isolation failures."""


class NoTenantContextError(TenantError):
    def __init__(self, message: str = "no tenant context"):
        super().__init__(message)


class InvalidTenantIDError(TenantError):
    def __init__(self, message: str = "invalid tenant ID"):
        super().__init__(message)


class CrossTenantAccessError(TenantError):
    def __init__(self, message: str = "cross-tenant access"):
        super().__init__(message)
