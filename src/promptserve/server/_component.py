# Copyright (c) 2026 Promptserve. Licensed under the MIT License. See LICENSE.
"""Base class for pieces the Server composes into one FastAPI app."""

import abc

from fastapi import APIRouter


class Component(abc.ABC):
    """Something that owns routes and has a startup/shutdown lifecycle.

    ``start`` runs inside the app lifespan before the first request is
    served; an exception there aborts startup.
    """

    @abc.abstractmethod
    def router(self) -> APIRouter:
        """Routes to mount on the application."""

    @abc.abstractmethod
    async def start(self) -> None: ...

    @abc.abstractmethod
    async def stop(self) -> None: ...
