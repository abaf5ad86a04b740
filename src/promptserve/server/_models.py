# Copyright (c) 2026 Promptserve. Licensed under the MIT License. See LICENSE.
"""Pydantic request models and server state for the promptserve API."""

import enum

from pydantic import BaseModel


class PromptRequest(BaseModel):
    prompt: str


class ServerState(enum.Enum):
    RUNNING = "running"
    LOADING = "loading"
    NO_MODEL = "no_model"
