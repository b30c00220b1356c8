"""FastAPI entry-point exposing agent dispatch controls."""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request

from agentmux.api.routes import agentmux_error_handler, router as agents_router
from agentmux.config import Settings
from agentmux.core.errors import AgentmuxError
from agentmux.core.logging import configure_logging
from agentmux.runtime import Runtime, build_runtime, register_builtin_handlers


def create_app(settings: Optional[Settings] = None, runtime: Optional[Runtime] = None) -> FastAPI:
    settings = settings or (runtime.settings if runtime else Settings.from_env())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifecycle manager for FastAPI application."""
        configure_logging(settings.log_level, settings.json_logs)
        active = runtime or build_runtime(settings)
        # Startup: bootstrap configs, start workers, then bind handler loaders
        await active.start()
        register_builtin_handlers(active)
        app.state.runtime = active
        yield
        # Shutdown: drain the queue within the grace period
        await active.stop()

    app = FastAPI(title="agentmux", lifespan=lifespan)
    app.include_router(agents_router)
    app.add_exception_handler(AgentmuxError, agentmux_error_handler)

    @app.get("/health")
    async def health(request: Request) -> dict:
        return {"status": "ok", "queue_running": request.app.state.runtime.queue.running}

    return app


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run("agentmux.main:app", host="0.0.0.0", port=8000)


if __name__ == "__main__":
    run()
