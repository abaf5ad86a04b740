# Copyright (c) 2026 Promptserve. Licensed under the MIT License. See LICENSE.
"""Server: one FastAPI app built from components, plus the liveness route."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from promptserve.errors import PromptserveError

from ._component import Component

logger = logging.getLogger(__name__)

GREETING = "Hello, world!"


async def _promptserve_error_handler(request: Request, exc: PromptserveError) -> JSONResponse:
    # Per-request failures: report and keep serving, never leak partial text.
    logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": str(exc)})


class Server:
    """Builds one FastAPI app out of Component instances.

    The app itself answers ``GET /`` as a liveness probe; components add
    the rest.  Usage::

        Server(LLM("mistralai/Mistral-7B-v0.1", token=hf_token)).run()
    """

    def __init__(self, *components: Component):
        if not components:
            raise ValueError("Server requires at least one component")

        kinds = [type(c) for c in components]
        dupes = {k.__name__ for k in kinds if kinds.count(k) > 1}
        if dupes:
            raise ValueError(f"Duplicate component type: {', '.join(sorted(dupes))}")

        self._components = components
        self._app: FastAPI | None = None

    @property
    def app(self) -> FastAPI:
        if self._app is None:
            self._app = self._build_app()
        return self._app

    def _build_app(self) -> FastAPI:
        components = self._components

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            for c in components:
                logger.info("starting %s", type(c).__name__)
                await c.start()
            try:
                yield
            finally:
                for c in reversed(components):
                    await c.stop()

        app = FastAPI(title="promptserve", version="0.1.0", lifespan=lifespan)
        app.add_exception_handler(PromptserveError, _promptserve_error_handler)

        @app.get("/", response_class=PlainTextResponse)
        async def hello_world():
            return GREETING

        for c in components:
            app.include_router(c.router())

        return app

    def run(self, host: str = "0.0.0.0", port: int = 8000, **kwargs) -> None:
        """Start the server with uvicorn."""
        uvicorn.run(self.app, host=host, port=port, **kwargs)
