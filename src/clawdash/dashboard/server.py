"""
clawdash Dashboard Server — Application Composition

Thin entry point that creates the FastAPI app and includes the HTTP
routes. Service wiring lives in `startup.py`.
"""

from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..config.loader import get_config
from ..config.models import DashboardConfig
from ..errors import InvalidInputError
from ..version import get_version
from .routes import router as http_router
from .startup import DashboardServices, build_services, lifespan


def create_app(
    config: Optional[DashboardConfig] = None,
    services: Optional[DashboardServices] = None,
) -> FastAPI:
    if services is None:
        services = build_services(config or get_config())

    app = FastAPI(
        title="clawdash",
        description="Local dashboard for an OpenClaw gateway",
        version=get_version(),
        lifespan=lifespan,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=services.config.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(InvalidInputError)
    async def invalid_input(request: Request, exc: InvalidInputError):
        return JSONResponse(status_code=400, content={"ok": False, "error": str(exc)})

    app.include_router(http_router)
    return app
