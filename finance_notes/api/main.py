"""FastAPI application factory"""

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from finance_notes.api.errors import register_exception_handlers
from finance_notes.api.middleware import RequestIDMiddleware, MetricsMiddleware
from finance_notes.api.v1 import auth, chat, documents, identity, transactions
from finance_notes.infrastructure.observability.logging import setup_logging
from finance_notes.config import settings

# Setup structured logging
setup_logging(settings.log_level, settings.service_name)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Finance Notes Ledger",
        description="Peer-to-peer lending ledger with OTP-gated closing and per-transaction chat",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(transactions.router, prefix="/v1", tags=["transactions"])
    app.include_router(identity.router, prefix="/v1", tags=["identity"])
    app.include_router(chat.router, prefix="/v1", tags=["chat"])
    app.include_router(documents.router, prefix="/v1", tags=["documents"])
    app.include_router(auth.router, prefix="/v1", tags=["auth"])

    return app


app = create_app()
