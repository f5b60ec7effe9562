"""
NIM Proxy - Application FastAPI Factory.
Proxy OpenAI-compatible vers NVIDIA NIM avec résolution de modèles et
réécriture du raisonnement.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .api.router import api_router
from .config.settings import Settings
from .core.exceptions import InvalidRequestError, UpstreamError
from .proxy.client import create_upstream_client
from .proxy.resolver import AliasTable, ModelResolver
from .proxy.transformers import RequestTranslator, ResponseBuilder

logger = logging.getLogger(__name__)


def error_response(message: str, status_code: int, error_type: str) -> JSONResponse:
    """Enveloppe d'erreur OpenAI: {"error": {"message", "type", "code"}}."""
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "message": message,
                "type": error_type,
                "code": status_code
            }
        }
    )


def create_app(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> FastAPI:
    """
    Factory pour créer l'application FastAPI.

    Args:
        settings: Configuration (sinon chargée depuis config.toml + env au démarrage)
        transport: Transport httpx alternatif vers l'upstream (tests)

    Returns:
        Instance configurée de FastAPI
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Gestion du cycle de vie de l'application."""
        # Startup
        await _startup(app, settings, transport)
        yield
        # Shutdown
        await _shutdown(app)

    app = FastAPI(
        title="NIM Proxy",
        description="Proxy OpenAI-compatible vers l'API NVIDIA NIM",
        version=__version__,
        lifespan=lifespan
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Inclusion des routes API
    app.include_router(api_router)

    _register_error_handlers(app)

    return app


def _register_error_handlers(app: FastAPI) -> None:

    @app.exception_handler(InvalidRequestError)
    async def invalid_request_handler(request: Request, exc: InvalidRequestError):
        return error_response(exc.message, exc.status_code, "invalid_request_error")

    @app.exception_handler(UpstreamError)
    async def upstream_error_handler(request: Request, exc: UpstreamError):
        logger.error("[PROXY] Erreur upstream %s: %s", exc.status_code, exc.message)
        return error_response(exc.message, exc.status_code, "upstream_error")

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            message = f"Endpoint {request.url.path} not found"
        else:
            message = str(exc.detail)
        return error_response(message, exc.status_code, "invalid_request_error")

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("[PROXY] Erreur inattendue: %s", exc)
        return error_response(str(exc) or "Internal server error", 500, "server_error")


async def _startup(
    app: FastAPI,
    settings: Optional[Settings],
    transport: Optional[httpx.AsyncBaseTransport]
) -> None:
    """Initialisation au démarrage (ConfigurationError = démarrage impossible)."""
    if settings is None:
        settings = Settings.load()

    upstream = create_upstream_client(settings.upstream, transport=transport)
    await upstream.open()

    app.state.settings = settings
    app.state.upstream = upstream
    app.state.resolver = ModelResolver(
        aliases=AliasTable.from_aliases(settings.model_aliases()),
        prober=upstream,
        fallback=settings.fallback,
        thinking_capable=settings.thinking_capable,
        thinking_enabled=settings.display.enable_thinking_mode
    )
    app.state.translator = RequestTranslator(settings.defaults)
    app.state.response_builder = ResponseBuilder(show_reasoning=settings.display.show_reasoning)

    logger.info("[STARTUP] Upstream: %s", settings.upstream.base_url)
    logger.info("[STARTUP] %d alias de modèles chargés", len(settings.aliases))
    logger.info(
        "[STARTUP] Reasoning: %s | Thinking: %s",
        settings.display.show_reasoning, settings.display.enable_thinking_mode
    )


async def _shutdown(app: FastAPI) -> None:
    """Arrêt de l'application."""
    upstream = getattr(app.state, "upstream", None)
    if upstream is not None:
        await upstream.aclose()
    logger.info("[SHUTDOWN] Serveur arrêté proprement")


# Crée l'application pour uvicorn
app = create_app()
