from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from weld_control.app.config import Settings, settings as default_settings
from weld_control.app.runtime.service_runtime import ServiceRuntime
from weld_control.app.utilities.telemetry import logger

from weld_control.app.api.v1.router import api_router
from weld_control.app.core.exceptions import setup_exception_handlers


def create_app(settings: Optional[Settings] = None, runtime: Optional[ServiceRuntime] = None) -> FastAPI:
    """Create and configure FastAPI application"""
    settings = settings or default_settings
    runtime = runtime or ServiceRuntime(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Handle application startup and shutdown"""
        try:
            app.state.engine = await runtime.start()
        except Exception as e:
            logger.error("Failed to initialize application", extra={
                "component": "api",
                "error": str(e)
            })
            raise

        try:
            yield
        finally:
            await runtime.stop()
            app.state.engine = None

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description=settings.api_description,
        lifespan=lifespan
    )
    app.state.engine = None
    app.state.runtime = runtime

    # Setup exception handlers
    setup_exception_handlers(app)

    # Include routers
    app.include_router(api_router)

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_app(), host=default_settings.api_host, port=default_settings.api_port)
