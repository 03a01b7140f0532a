"""
Shared fixtures for DocShield Gateway tests.
"""

import json
import uuid

import pytest

from docshield_gateway.audit import InMemoryAuditSink
from docshield_gateway.config import GatewayConfig
from docshield_gateway.gateway import SafetyGateway
from docshield_gateway.models import AnalysisRequest

CLEAN_DOCUMENT = (
    "Bescheid über die Einkommensteuer 2023. "
    "Bitte überweisen Sie den Betrag von EUR 1.234,56."
)

CLEAN_REPLY = json.dumps(
    {"summary": "Einkommensteuerbescheid 2023", "document_type": "bescheid", "confidence": 0.95}
)

LEAKING_REPLY = json.dumps(
    {"summary": "Token: eyJabc.eyJdef.sigXYZ found", "document_type": "bescheid", "confidence": 0.9}
)


class FakeLLM:
    """Scripted upstream model that records every call."""

    def __init__(self, reply=CLEAN_REPLY, error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    async def complete(self, system_prompt, user_prompt, temperature):
        self.calls.append(
            {"system_prompt": system_prompt, "user_prompt": user_prompt, "temperature": temperature}
        )
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
def tenant_id():
    return uuid.uuid4()


@pytest.fixture
def user_id():
    return uuid.uuid4()


@pytest.fixture
def audit_sink():
    return InMemoryAuditSink()


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def make_gateway(audit_sink):
    """Build a gateway around a FakeLLM with the given reply and policy."""

    def _make(reply=CLEAN_REPLY, error=None, **config):
        llm = FakeLLM(reply=reply, error=error)
        gateway = SafetyGateway(llm, GatewayConfig(**config), audit_sink)
        return gateway, llm

    return _make


@pytest.fixture
def make_request(tenant_id, user_id):
    def _make(document_text=CLEAN_DOCUMENT, **kwargs):
        return AnalysisRequest(
            document_id=uuid.uuid4(),
            document_text=document_text,
            tenant_id=tenant_id,
            user_id=user_id,
            **kwargs,
        )

    return _make
