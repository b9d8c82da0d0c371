import logging
from contextlib import asynccontextmanager
from typing import Optional
import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from .api.routes import router
from .api.webhooks import router as webhook_router
from .config import AgentGConfig
from .errors import AgentGError
from .services import AgentGServices

logger = logging.getLogger(__name__)


def create_app(config: Optional[AgentGConfig] = None, http_transport: Optional[httpx.AsyncBaseTransport] = None) -> FastAPI:
    config = config or AgentGConfig.from_env()

    log_level = getattr(logging, config.log_level.upper(), logging.INFO)
    logging.basicConfig(level=log_level, format="%(asctime)s %(name)s %(levelname)s %(message)s")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Application starting up...")
        services = AgentGServices(config, http_transport=http_transport)

        is_connected = await services.redis.check_connection()
        if not is_connected:
            logger.warning("⚠️ Redis connection failed. Inbound events will use the in-memory fallback.")

        app.state.services = services
        yield

        logger.info("Application shutting down...")
        await services.close()

    app = FastAPI(title="Agent G Orchestration API", version="0.1.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(AgentGError)
    async def agent_g_error_handler(request: Request, exc: AgentGError):
        logger.warning(f"{request.method} {request.url.path} -> {exc.status_code}: {exc}")
        return JSONResponse(status_code=exc.status_code, content={"status": "error", "error": str(exc)})

    app.include_router(router)
    app.include_router(webhook_router)

    @app.get("/")
    async def root():
        return {"message": "Agent G orchestration API is running"}

    return app


app = create_app()
