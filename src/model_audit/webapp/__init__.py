"""FastAPI application exposing the audit service over HTTP."""

# pyright: reportUnusedFunction=false

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, cast

from fastapi import FastAPI, HTTPException, Query, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..container import ServiceContainer, create_container
from ..domain import STATUS_RUNNING
from ..exceptions import (
    ConfigurationError,
    ModelAuditException,
    NotFoundError,
    PreconditionError,
    UnsupportedFormatError,
    ValidationError,
)
from ..infrastructure.config_manager import ConfigurationManager
from ..service import AuditService

LOGGER = logging.getLogger(__name__)

DEFAULT_CORS_ORIGINS = ["http://localhost:5173", "http://127.0.0.1:5173"]


# Pydantic models for request/response validation
class ModelRequest(BaseModel):
    """Request model for registering or updating a model."""

    name: str = Field(min_length=1)
    provider: str = Field(min_length=1)
    version: str = Field(min_length=1)
    config: Dict[str, Any]


class AuditRequest(BaseModel):
    """Request model for starting an audit."""

    model_id: str = Field(min_length=1)
    test_suites: List[str]


class AuditStartedResponse(BaseModel):
    audit_id: str
    message: str = "Audit started"
    model_id: str
    test_suites: List[str]
    status: str = STATUS_RUNNING


class ExportRequest(BaseModel):
    format: str = "json"


class ComparisonRequest(BaseModel):
    audit_a_id: str = Field(min_length=1)
    audit_b_id: str = Field(min_length=1)


class ConnectionResponse(BaseModel):
    model_id: str
    connected: bool


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str = "ok"
    providers: List[str] = []


class ErrorResponse(BaseModel):
    """Response model for errors."""

    detail: str
    hint: Optional[str] = None


_STATUS_BY_ERROR = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (PreconditionError, status.HTTP_409_CONFLICT),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (UnsupportedFormatError, status.HTTP_400_BAD_REQUEST),
    (ConfigurationError, status.HTTP_400_BAD_REQUEST),
]


def _status_for(exc: ModelAuditException) -> int:
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _service(app: FastAPI) -> AuditService:
    return cast(AuditService, app.state.audit_service)


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ModelAuditException)
    async def handle_model_audit_error(request: Request, exc: ModelAuditException) -> JSONResponse:
        code = _status_for(exc)
        if code >= 500:
            LOGGER.error("Unhandled error on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=code, content=ErrorResponse(detail=exc.message).model_dump(exclude_none=True))


def _register_health_routes(app: FastAPI) -> None:
    @app.get("/api/health", response_model=HealthResponse, tags=["health"])
    async def api_health() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(status="ok", providers=_service(app).registry.providers())


def _register_model_routes(app: FastAPI) -> None:
    """Register model registration and lookup endpoints."""

    @app.get("/api/models", tags=["models"])
    def api_list_models() -> List[Dict[str, Any]]:
        return [model.to_dict() for model in _service(app).list_models()]

    @app.post("/api/models", tags=["models"])
    def api_upsert_model(request: ModelRequest) -> Dict[str, Any]:
        model = _service(app).upsert_model(request.name, request.provider, request.version, request.config)
        return model.to_dict()

    @app.get("/api/models/{model_id}", tags=["models"])
    def api_get_model(model_id: str) -> Dict[str, Any]:
        model = _service(app).get_model(model_id)
        if model is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Model not found")
        return model.to_dict()

    @app.get("/api/models/{model_id}/versions", tags=["models"])
    def api_model_versions(model_id: str) -> List[Dict[str, Any]]:
        service = _service(app)
        model = service.get_model(model_id)
        if model is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Model not found")
        return [version.to_dict() for version in service.get_model_versions(model.name, model.provider)]

    @app.get("/api/models/{model_id}/audits", tags=["models"])
    def api_model_audits(model_id: str) -> List[Dict[str, Any]]:
        service = _service(app)
        if service.get_model(model_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Model not found")
        return [audit.to_dict() for audit in service.get_audit_history(model_id)]

    @app.post("/api/models/{model_id}/test-connection", response_model=ConnectionResponse, tags=["models"])
    def api_test_connection(model_id: str) -> ConnectionResponse:
        return ConnectionResponse(model_id=model_id, connected=_service(app).test_connection(model_id))


def _register_audit_routes(app: FastAPI) -> None:
    """Register audit start, lookup and export endpoints."""

    @app.get("/api/audits", tags=["audits"])
    def api_list_audits(
        model_id: Optional[str] = None,
        status_filter: Optional[str] = Query(None, alias="status"),
        limit: int = 50,
    ) -> List[Dict[str, Any]]:
        return [audit.to_dict() for audit in _service(app).list_audits(model_id, status_filter, limit)]

    @app.post("/api/audits", response_model=AuditStartedResponse, tags=["audits"])
    def api_start_audit(request: AuditRequest) -> AuditStartedResponse:
        handle = _service(app).start_audit(request.model_id, request.test_suites)
        return AuditStartedResponse(
            audit_id=handle.run_id, model_id=request.model_id, test_suites=list(request.test_suites)
        )

    @app.get("/api/audits/{audit_id}", tags=["audits"])
    def api_get_audit(audit_id: str) -> Dict[str, Any]:
        audit = _service(app).get_audit(audit_id)
        if audit is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Audit not found")
        return audit.to_dict()

    @app.post("/api/audits/{audit_id}/export", tags=["audits"])
    def api_export_audit(audit_id: str, request: Optional[ExportRequest] = None) -> Response:
        fmt = request.format if request is not None else "json"
        body = _service(app).export_audit(audit_id, fmt)
        return Response(
            content=body,
            media_type="application/json",
            headers={"Content-Disposition": f'attachment; filename="audit-{audit_id}.json"'},
        )


def _register_comparison_routes(app: FastAPI) -> None:
    @app.post("/api/comparisons", tags=["comparisons"])
    def api_compare(request: ComparisonRequest) -> Dict[str, Any]:
        return _service(app).compare_audits(request.audit_a_id, request.audit_b_id).to_dict()

    @app.get("/api/comparisons", tags=["comparisons"])
    def api_list_comparisons(model_id: Optional[str] = None) -> List[Dict[str, Any]]:
        if not model_id:
            raise ValidationError("Query parameter model_id is required", field="model_id")
        return [comparison.to_dict() for comparison in _service(app).list_comparisons_for_model(model_id)]

    @app.get("/api/comparisons/{comparison_id}", tags=["comparisons"])
    def api_get_comparison(comparison_id: str) -> Dict[str, Any]:
        comparison = _service(app).get_comparison(comparison_id)
        if comparison is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Comparison not found")
        return comparison.to_dict()


def create_app(
    config: Dict[str, Any] | None = None,
    container: Optional[ServiceContainer] = None,
) -> FastAPI:
    """Factory for the FastAPI web application.

    Args:
        config: Optional configuration overrides used when no container is given
        container: Optional ServiceContainer; built from ``config`` when omitted

    Returns:
        Configured FastAPI application instance
    """
    resolved = container if container is not None else create_container(config)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        resolved.clear()

    app = FastAPI(
        title="Model Audit API",
        description="Audit LLM endpoints for refusal, bias and side-channel behaviour",
        version="1.0.0",
        lifespan=lifespan,
    )

    config_manager = cast(ConfigurationManager, resolved.resolve(ConfigurationManager))
    service = cast(AuditService, resolved.resolve(AuditService))

    app.state.service_container = resolved
    app.state.audit_service = service

    origins = config_manager.get("web.cors_origins") or DEFAULT_CORS_ORIGINS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_error_handlers(app)
    _register_health_routes(app)
    _register_model_routes(app)
    _register_audit_routes(app)
    _register_comparison_routes(app)

    LOGGER.info("Model audit API ready (providers: %s)", ", ".join(service.registry.providers()))
    return app


__all__ = ["create_app"]
