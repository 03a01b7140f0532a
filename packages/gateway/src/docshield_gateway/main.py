"""
DocShield Gateway - Main Entry Point

FastAPI application exposing AI document analysis behind input
sanitation, output validation and tenant-scoped auditing.
"""

import argparse
import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .api import AIRouter, register_exception_handlers
from .audit import AuditSink, NullAuditSink, SQLAuditSink
from .auth import AuthManager
from .config import Settings, get_settings
from .database import DatabaseManager
from .gateway import SafetyGateway
from .llm import LLMClient, OpenAIChatClient
from .models import HealthResponse

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    llm_client: Optional[LLMClient] = None,
    audit_sink: Optional[AuditSink] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="DocShield Gateway",
        description="Secure AI document analysis with prompt-injection and data-leak protection",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if audit_sink is None:
        if settings.audit_enabled:
            db_manager = DatabaseManager(settings.database_url)
            db_manager.create_tables()
            audit_sink = SQLAuditSink(db_manager)
            app.state.db_manager = db_manager
        else:
            logger.info("Audit logging disabled")
            audit_sink = NullAuditSink()

    if llm_client is None:
        llm_client = OpenAIChatClient(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            base_url=settings.openai_base_url,
        )

    gateway = SafetyGateway(llm_client, settings.gateway_config(), audit_sink)
    app.state.gateway = gateway
    app.state.auth_manager = AuthManager(settings.jwt_secret, settings.jwt_algorithm)

    register_exception_handlers(app)
    app.include_router(AIRouter(gateway).router, prefix="/v1")

    # Health check endpoint
    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        return HealthResponse(
            status="healthy", version=__version__, audit_enabled=settings.audit_enabled
        )

    return app


def main():
    """Main entry point for the CLI."""
    settings = get_settings()

    parser = argparse.ArgumentParser(description="DocShield Gateway")
    parser.add_argument("--host", default=settings.host, help="Host to bind to")
    parser.add_argument("--port", type=int, default=settings.port, help="Port to bind to")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload")
    parser.add_argument("--log-level", default=settings.log_level, help="Log level")

    args = parser.parse_args()

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.reload:
        uvicorn.run(
            "docshield_gateway.main:create_app",
            factory=True,
            host=args.host,
            port=args.port,
            reload=True,
            log_level=args.log_level,
        )
        return

    uvicorn.run(
        create_app(settings),
        host=args.host,
        port=args.port,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()
