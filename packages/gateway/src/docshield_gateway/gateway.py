"""
Safety Gateway orchestrator for DocShield

Composes input sanitation, the upstream LLM call, schema validation and
output scanning under a configurable policy, and records one audit entry
per call.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .audit import DOCUMENT_ANALYSIS, TEXT_ANALYSIS, AuditDraft, AuditRecorder, AuditSink
from .config import GatewayConfig
from .detector import SuspiciousOutputDetector, fit_redacted
from .errors import (
    AIRequestFailedError,
    DangerousContentError,
    GatewayError,
    InternalGatewayError,
    OutputValidationError,
    SensitiveDataLeakError,
    UpstreamError,
)
from .llm import AIClientAdapter, LLMClient
from .models import AnalysisRequest, AnalysisResponse, TextAnalysisRequest, TextAnalysisResponse
from .sanitizer import InputSanitizer, SanitizeResult
from .schema import DOCUMENT_ANALYSIS_SCHEMA, SchemaValidator, is_finite_number, json_type_name

logger = logging.getLogger(__name__)


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _as_optional_text(value: Any) -> Optional[str]:
    return None if value is None else _as_text(value)


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not is_finite_number(value):
        return None
    return float(value)


def _max_len(name: str) -> Optional[int]:
    field_def = DOCUMENT_ANALYSIS_SCHEMA.fields[name]
    if field_def.items is not None:
        return field_def.items.max_len
    return field_def.max_len


def _as_text_list(value: Any) -> Optional[List[str]]:
    if not isinstance(value, list):
        return None
    return [_as_text(item) for item in value if item is not None]


class SafetyGateway:
    """Security wrapper around the upstream document analysis model."""

    def __init__(
        self,
        client: LLMClient,
        config: Optional[GatewayConfig] = None,
        audit_sink: Optional[AuditSink] = None,
    ):
        self._config = config or GatewayConfig()
        self.adapter = AIClientAdapter(client)
        self.sanitizer = InputSanitizer(self._config.max_input_size)
        self.detector = SuspiciousOutputDetector()
        self.validator = SchemaValidator(allow_extra_fields=self._config.allow_extra_fields)
        self.recorder = AuditRecorder(audit_sink)

    @property
    def config(self) -> GatewayConfig:
        return self._config

    def check_input_safety(self, text: str) -> SanitizeResult:
        """Preflight sanitation. No upstream call, no audit entry."""
        return self.sanitizer.sanitize(text)

    async def analyze(self, request: AnalysisRequest) -> AnalysisResponse:
        """
        Analyze a document through the full safety pipeline.

        Args:
            request: Document analysis request with tenant and user identity

        Returns:
            AnalysisResponse whose strings have all passed output scanning

        Raises:
            GatewayError: One of the categorised failures
        """
        async with self.recorder.track(
            request.tenant_id, request.user_id, DOCUMENT_ANALYSIS
        ) as audit:
            try:
                return await self._analyze(request, audit)
            except GatewayError:
                raise
            except Exception as e:
                logger.error(f"Unexpected failure in document analysis: {type(e).__name__}")
                audit.fail("internal error")
                raise InternalGatewayError() from e

    async def analyze_text(self, request: TextAnalysisRequest) -> TextAnalysisResponse:
        """Analyze free text. Same pipeline without schema validation."""
        async with self.recorder.track(request.tenant_id, request.user_id, TEXT_ANALYSIS) as audit:
            try:
                return await self._analyze_text(request, audit)
            except GatewayError:
                raise
            except Exception as e:
                logger.error(f"Unexpected failure in text analysis: {type(e).__name__}")
                audit.fail("internal error")
                raise InternalGatewayError() from e

    def _sanitize_input(
        self, value: str, audit: AuditDraft, rejection_message: str
    ) -> SanitizeResult:
        result = self.sanitizer.sanitize(value)
        audit.input_sanitized = audit.input_sanitized or result.changed
        audit.input_filtered_count += result.filtered_count

        if result.was_filtered and self._config.strict_validation:
            logger.warning(
                f"Rejected input for tenant {audit.tenant_id}: "
                f"{result.filtered_count} dangerous matches"
            )
            audit.fail(rejection_message)
            raise DangerousContentError()
        return result

    def _sanitize_optional(
        self, value: Optional[str], audit: AuditDraft, rejection_message: str
    ) -> Optional[str]:
        if not value:
            return value
        return self._sanitize_input(value, audit, rejection_message).text

    async def _call_upstream(self, call, request, audit: AuditDraft) -> Any:
        try:
            return await call(request)
        except UpstreamError as e:
            logger.error(f"AI request failed for tenant {audit.tenant_id}: {e}")
            audit.fail(f"AI request failed: {e}")
            raise AIRequestFailedError(str(e)) from e
        except OutputValidationError as e:
            logger.warning(f"Unparseable AI output for tenant {audit.tenant_id}")
            audit.fail(f"validation errors: {e.detail or e.message}")
            raise

    def _scan(
        self, value: str, audit: AuditDraft, leak_message: str, max_len: Optional[int] = None
    ) -> str:
        """Return the value, redacted if suspicious, or reject it under policy.

        A redacted value is kept within max_len bytes.
        """
        result = self.detector.check(value)
        if not result.is_suspicious:
            return value

        audit.add_suspicious_types(result.suspicious_types)
        if self._config.redact_sensitive_data:
            if max_len is None:
                return result.redacted_content
            return fit_redacted(result.redacted_content, max_len)

        logger.warning(
            f"Blocked AI output for tenant {audit.tenant_id}: {result.suspicious_types}"
        )
        audit.fail(leak_message)
        raise SensitiveDataLeakError()

    def _scan_items(
        self, items: Optional[List[str]], audit: AuditDraft, max_len: Optional[int] = None
    ) -> Optional[List[str]]:
        if items is None:
            return None
        return [
            self._scan(item, audit, "action item contains sensitive data", max_len)
            for item in items
        ]

    async def _analyze(self, request: AnalysisRequest, audit: AuditDraft) -> AnalysisResponse:
        document = self._sanitize_input(
            request.document_text, audit, "input contained dangerous content"
        )
        prompt = self._sanitize_optional(
            request.prompt, audit, "prompt contained dangerous content"
        )
        document_type = self._sanitize_optional(
            request.document_type, audit, "document type contained dangerous content"
        )

        safe_request = request.model_copy(
            update={
                "document_text": document.text,
                "prompt": prompt,
                "document_type": document_type,
            }
        )
        raw = await self._call_upstream(self.adapter.analyze, safe_request, audit)

        validation = self.validator.validate(raw, DOCUMENT_ANALYSIS_SCHEMA)
        audit.stripped_fields = list(validation.stripped_fields)
        if validation.stripped_fields:
            logger.info(f"Stripped unknown fields from AI output: {validation.stripped_fields}")

        if validation.valid:
            audit.output_validated = True
        elif self._config.strict_validation or validation.sanitized_output is None:
            audit.fail(f"validation errors: {'; '.join(validation.errors)}")
            raise OutputValidationError("; ".join(validation.errors))
        else:
            logger.warning(
                f"AI output failed validation with {len(validation.errors)} errors, continuing"
            )

        data: Dict[str, Any] = validation.sanitized_output
        response = AnalysisResponse(
            summary=_as_text(data.get("summary")),
            document_type=_as_text(data.get("document_type")),
            deadline=_as_optional_text(data.get("deadline")),
            amount=_as_number(data.get("amount")),
            action_items=_as_text_list(data.get("action_items")),
            confidence=_as_number(data.get("confidence")) or 0.0,
            processed_at=datetime.now(timezone.utc),
        )

        leak = "output contains sensitive data"
        response.summary = self._scan(response.summary, audit, leak, _max_len("summary"))
        response.action_items = self._scan_items(
            response.action_items, audit, _max_len("action_items")
        )
        response.document_type = self._scan(
            response.document_type, audit, leak, _max_len("document_type")
        )
        if response.deadline is not None:
            response.deadline = self._scan(response.deadline, audit, leak, _max_len("deadline"))

        response.processed_at = datetime.now(timezone.utc)
        audit.succeed()
        logger.info(
            f"Document analysis completed for tenant {audit.tenant_id}, "
            f"suspicious={audit.suspicious_found}"
        )
        return response

    async def _analyze_text(
        self, request: TextAnalysisRequest, audit: AuditDraft
    ) -> TextAnalysisResponse:
        text = self._sanitize_input(request.text, audit, "input contained dangerous content")
        prompt = self._sanitize_optional(
            request.prompt, audit, "prompt contained dangerous content"
        )

        safe_request = request.model_copy(update={"text": text.text, "prompt": prompt})
        raw = await self._call_upstream(self.adapter.analyze_text, safe_request, audit)

        if not isinstance(raw, dict):
            message = f"invalid JSON: expected object, got {json_type_name(raw)}"
            audit.fail(f"validation errors: {message}")
            raise OutputValidationError(message)
        # Text output has no schema; it counts as validated
        audit.output_validated = True

        response = TextAnalysisResponse(
            summary=self._scan(
                _as_text(raw.get("summary")), audit, "output contains sensitive data"
            ),
            action_items=None,
            confidence=_as_number(raw.get("confidence")) or 0.0,
            processed_at=datetime.now(timezone.utc),
        )
        response.action_items = self._scan_items(_as_text_list(raw.get("action_items")), audit)

        response.processed_at = datetime.now(timezone.utc)
        audit.succeed()
        logger.info(
            f"Text analysis completed for tenant {audit.tenant_id}, "
            f"suspicious={audit.suspicious_found}"
        )
        return response
