"""
DocShield Gateway

A FastAPI-based security gateway that sanitises documents before they reach
an LLM, validates and scans what comes back, and audits every call per
tenant.
"""

__version__ = "0.1.0"
__author__ = "DocShield Team"

from .audit import (AuditEntry, AuditRecorder, AuditSink, InMemoryAuditSink,
                    NullAuditSink, SQLAuditSink)
from .config import GatewayConfig, Settings
from .detector import SuspiciousOutputDetector, SuspiciousResult
from .errors import (AIRequestFailedError, DangerousContentError, ErrorCategory,
                     GatewayError, InputTooLargeError, OutputValidationError,
                     SensitiveDataLeakError)
from .gateway import SafetyGateway
from .models import (AnalysisRequest, AnalysisResponse, TextAnalysisRequest,
                     TextAnalysisResponse)
from .rls import TenantSessionManager
from .sanitizer import InputSanitizer, SanitizeResult
from .schema import SchemaValidator, ValidationResult
from .tenant import TenantContext, TenantGuard, get_tenant_context, tenant_scope

__all__ = [
    "SafetyGateway",
    "GatewayConfig",
    "Settings",
    "InputSanitizer",
    "SanitizeResult",
    "SuspiciousOutputDetector",
    "SuspiciousResult",
    "SchemaValidator",
    "ValidationResult",
    "TenantContext",
    "TenantGuard",
    "TenantSessionManager",
    "tenant_scope",
    "get_tenant_context",
    "AuditEntry",
    "AuditSink",
    "AuditRecorder",
    "NullAuditSink",
    "InMemoryAuditSink",
    "SQLAuditSink",
    "AnalysisRequest",
    "AnalysisResponse",
    "TextAnalysisRequest",
    "TextAnalysisResponse",
    "ErrorCategory",
    "GatewayError",
    "InputTooLargeError",
    "DangerousContentError",
    "SensitiveDataLeakError",
    "OutputValidationError",
    "AIRequestFailedError",
]
