"""
OpenURL Gateway FastAPI Application - OpenURL to resource-sharing requests.

This is the main entry point for the gateway.
It delegates request processing to the RequestOrchestrator.

DESIGN PRINCIPLE:
- main.py is a THIN HTTP LAYER
- All business logic lives in the pipeline stages
- main.py only handles: static files, HTTP concerns, error translation
"""

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Dict, List, Optional

import colorlog
import httpx
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse, PlainTextResponse, Response
from fastapi.staticfiles import StaticFiles

from openurl_gateway.pipeline.request_context import PipelineOutcome, PipelineResources
from openurl_gateway.services.config_manager import ConfigManager
from openurl_gateway.services.diagnostics import JSON_MEDIA_TYPE
from openurl_gateway.services.pipeline_errors import (
    PipelineError,
    SubmissionError,
    UnsupportedServiceError,
)
from openurl_gateway.services.request_orchestrator import RequestOrchestrator
from openurl_gateway.services.service_registry import ServiceRegistry
from openurl_gateway.services.template_renderer import TEMPLATE_NAMES, TemplateRenderer

# Load environment variables
load_dotenv()

# =============================================================================
# CONFIGURATION
# =============================================================================

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Configure logging

def setup_global_color_logging():
    logging.basicConfig(level=getattr(logging, LOG_LEVEL.upper()))
    root_logger = logging.getLogger()

    # Remove existing handlers to avoid duplicates
    root_logger.handlers.clear()

    handler = logging.StreamHandler()
    handler.setFormatter(colorlog.ColoredFormatter(
        "%(log_color)s%(levelname)-8s%(reset)s %(name)s: %(message)s",
        log_colors={
            'DEBUG': 'cyan',
            'INFO': 'green',
            'WARNING': 'yellow',
            'ERROR': 'red',
            'CRITICAL': 'bold_red',
        }
    ))
    root_logger.addHandler(handler)

setup_global_color_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# HELPERS
# =============================================================================

def _headers_by_name(request: Request) -> Dict[str, List[str]]:
    """Lowercased header name -> every value received for it."""
    headers: Dict[str, List[str]] = {}
    for name, value in request.headers.items():
        headers.setdefault(name.lower(), []).append(value)
    return headers


def _static_file(path: Path) -> Response:
    if not path.is_file():
        return PlainTextResponse("Not Found", status_code=404)
    return FileResponse(path)


def _to_response(outcome: PipelineOutcome) -> Response:
    if outcome.media_type == JSON_MEDIA_TYPE:
        return JSONResponse(
            content=outcome.content,
            status_code=outcome.status_code,
            headers=outcome.headers,
            media_type=JSON_MEDIA_TYPE,
        )
    return HTMLResponse(
        content=outcome.content,
        status_code=outcome.status_code,
        headers=outcome.headers,
    )


# =============================================================================
# APP FACTORY
# =============================================================================

def create_app(
    config: Optional[ConfigManager] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the gateway application.

    Args:
        config: Loaded configuration (default: from OPENURL_CONFIG)
        transport: httpx transport for downstream calls (tests inject a mock)
    """
    config = config or ConfigManager.from_file()
    registry = ServiceRegistry(config, transport=transport)
    renderer = TemplateRenderer(config.template_dir)
    for name in TEMPLATE_NAMES:
        renderer.get_template(name)

    orchestrator = RequestOrchestrator(PipelineResources(config, registry, renderer))
    doc_root = config.doc_root

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Log every service in on startup."""
        logger.info("Starting OpenURL gateway...")
        await registry.login_all()
        logger.info("OpenURL gateway started successfully")

        yield

        logger.info("Shutting down OpenURL gateway...")

    app = FastAPI(
        title="OpenURL Gateway",
        description="Turns OpenURL requests into resource-sharing patron requests",
        version="1.0.0",
        lifespan=lifespan,
    )

    # -------------------------------------------------------------------------
    # Error translation
    # -------------------------------------------------------------------------

    @app.exception_handler(UnsupportedServiceError)
    async def unsupported_service_handler(request: Request, exc: UnsupportedServiceError):
        logger.warning(f"Rejected request for {exc.message}")
        return PlainTextResponse(exc.message, status_code=exc.status_code)

    @app.exception_handler(SubmissionError)
    async def submission_error_handler(request: Request, exc: SubmissionError):
        logger.error(f"{exc.message}: downstream status {exc.status}")
        return _to_response(exc.outcome)

    @app.exception_handler(PipelineError)
    async def pipeline_error_handler(request: Request, exc: PipelineError):
        logger.error(f"Pipeline failed: {exc.to_dict()}")
        return PlainTextResponse(exc.message, status_code=exc.status_code)

    # -------------------------------------------------------------------------
    # Endpoints
    # -------------------------------------------------------------------------

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "service": "openurl-gateway"}

    @app.get("/favicon.ico", include_in_schema=False)
    async def favicon():
        return _static_file(doc_root / "favicon.ico")

    app.mount("/static", StaticFiles(directory=doc_root / "static", check_dir=False), name="static")

    @app.get("/{path:path}", tags=["OpenURL"])
    async def openurl(request: Request, path: str):
        """Process an OpenURL request for the service named by the path or res_org."""
        if path == "" and not request.url.query:
            return _static_file(doc_root / "index.html")

        outcome = await orchestrator.handle(
            dict(request.query_params),
            request.url.path,
            _headers_by_name(request),
        )
        return _to_response(outcome)

    return app


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", "3012"))

    uvicorn.run(create_app(), host=host, port=port)
