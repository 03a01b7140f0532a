"""
DocShield Gateway Models

Pydantic models for gateway calls and API requests and responses.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class AnalysisRequest(BaseModel):
    """Input to a document analysis. Immutable once it enters the gateway."""

    model_config = ConfigDict(frozen=True)

    document_id: Optional[UUID] = None
    document_text: str
    document_type: Optional[str] = None
    prompt: Optional[str] = None
    tenant_id: UUID
    user_id: UUID


class AnalysisResponse(BaseModel):
    """Structured analysis of one document."""

    summary: str
    document_type: str
    deadline: Optional[str] = None
    amount: Optional[float] = None
    action_items: Optional[List[str]] = None
    confidence: float = 0.0
    processed_at: datetime


class TextAnalysisRequest(BaseModel):
    """Input to a free text analysis."""

    model_config = ConfigDict(frozen=True)

    text: str
    prompt: Optional[str] = None
    tenant_id: UUID
    user_id: UUID


class TextAnalysisResponse(BaseModel):
    """Structured analysis of free text."""

    summary: str
    action_items: Optional[List[str]] = None
    confidence: float = 0.0
    processed_at: datetime


# HTTP request bodies


class AnalyzeDocumentBody(BaseModel):
    """Request body for POST /ai/analyze."""

    document_id: Optional[str] = None
    document_text: str = ""
    document_type: Optional[str] = None
    prompt: Optional[str] = None


class AnalyzeTextBody(BaseModel):
    """Request body for POST /ai/analyze/text."""

    text: str = ""
    prompt: Optional[str] = None


class CheckSafetyBody(BaseModel):
    """Request body for POST /ai/check-safety."""

    text: str = ""


class CheckSafetyResponse(BaseModel):
    """Preflight verdict. ``sanitized_text`` is set only when the input changed."""

    safe: bool
    was_truncated: bool
    was_filtered: bool
    filtered_count: int
    original_length: int
    sanitized_length: int
    sanitized_text: Optional[str] = None


class ErrorResponse(BaseModel):
    """Error body returned by every endpoint."""

    error: str
    code: str


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    audit_enabled: bool
