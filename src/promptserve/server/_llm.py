# Copyright (c) 2026 Promptserve. Licensed under the MIT License. See LICENSE.
"""LLM component: loads the model once and serves POST /prompt."""

import asyncio
import functools
import logging
import threading

from fastapi import APIRouter, HTTPException
from fastapi.responses import PlainTextResponse

from promptserve.errors import MissingSpecialTokenError
from promptserve.generation import GenerationResult, TextGeneration
from promptserve.sampling import SamplingConfig

from ._component import Component
from ._models import PromptRequest, ServerState

logger = logging.getLogger(__name__)


class LLM(Component):
    """Text generation component.

    The model handle is loaded in ``start`` (or injected with ``handle=``)
    and shared read-only by all requests; each request gets a fresh
    TextGeneration with its own cursors and key/value cache.
    """

    def __init__(
        self,
        model_id: str,
        revision: str | None = None,
        token: str | None = None,
        device: str = "cpu",
        dtype: str = "float32",
        max_tokens: int = 2000,
        eos_token: str = "</s>",
        sampling_overrides: dict | None = None,
        trust_remote_code: bool = False,
        handle=None,
        sampling: SamplingConfig | None = None,
    ):
        self._model_id = model_id
        self._revision = revision
        self._token = token
        self._device = device
        self._dtype = dtype
        self._sampling_overrides = sampling_overrides or {}
        self._trust_remote_code = trust_remote_code
        self.max_tokens = max_tokens
        self.eos_token = eos_token
        self.handle = handle
        self.sampling = sampling
        self.state: ServerState = ServerState.NO_MODEL
        self._shutdown = threading.Event()

    # -- lifecycle -----------------------------------------------------------

    async def start(self) -> None:
        self.state = ServerState.LOADING
        self._shutdown.clear()
        if self.handle is None:
            loop = asyncio.get_running_loop()
            self.handle, sampling = await loop.run_in_executor(None, self._load)
            if self.sampling is None:
                self.sampling = sampling
        elif self.sampling is None:
            self.sampling = SamplingConfig(
                **{k: v for k, v in self._sampling_overrides.items() if v is not None}
            )

        if self.handle.token_id_for(self.eos_token) is None:
            self.state = ServerState.NO_MODEL
            raise MissingSpecialTokenError(self.eos_token)
        self.state = ServerState.RUNNING
        logger.info("model %s ready, sampling %s", self.handle.name, self.sampling)

    def _load(self):
        from promptserve.model_store import load_session

        return load_session(
            self._model_id,
            revision=self._revision,
            token=self._token,
            device=self._device,
            dtype=self._dtype,
            sampling_overrides=self._sampling_overrides,
            trust_remote_code=self._trust_remote_code,
        )

    async def stop(self) -> None:
        # In-flight generations stop at their next step.
        self._shutdown.set()
        self.state = ServerState.NO_MODEL

    # -- generation ----------------------------------------------------------

    def generate(self, prompt: str, max_tokens: int | None = None) -> GenerationResult:
        """Run one blocking generation with request-local state."""
        budget = self.max_tokens if max_tokens is None else max_tokens
        textgen = TextGeneration(self.handle, self.sampling, eos_token=self.eos_token)
        return textgen.run(prompt, budget, cancel=self._shutdown)

    # -- router --------------------------------------------------------------

    def router(self) -> APIRouter:
        r = APIRouter()
        llm = self  # closure reference

        @r.post("/prompt", response_class=PlainTextResponse)
        async def run_pipeline(req: PromptRequest):
            if llm.state == ServerState.LOADING:
                raise HTTPException(status_code=503, detail="Model is still loading")
            if llm.handle is None or llm.state != ServerState.RUNNING:
                raise HTTPException(status_code=503, detail="No model loaded")

            loop = asyncio.get_running_loop()
            result = await loop.run_in_executor(
                None, functools.partial(llm.generate, req.prompt)
            )
            return PlainTextResponse(
                result.text,
                headers={
                    "X-Finish-Reason": result.finish_reason.value,
                    "X-Prompt-Tokens": str(result.prompt_tokens),
                    "X-Completion-Tokens": str(result.completion_tokens),
                },
            )

        return r
