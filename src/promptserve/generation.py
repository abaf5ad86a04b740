# Copyright (c) 2026 Promptserve. Licensed under the MIT License. See LICENSE.
"""
Generation loop: prompt in, generated text out.

One TextGeneration serves one request. It owns the token history, the
detokenizer cursors, the sampler's random state and the forward session's
key/value cache; only the ModelHandle underneath is shared.
"""

import enum
import logging
import threading
from dataclasses import dataclass

from promptserve.errors import (
    ForwardPassError,
    GenerationCancelled,
    GenerationError,
    MissingSpecialTokenError,
    PromptserveError,
)
from promptserve.sampling import LogitsProcessor, SamplingConfig
from promptserve.token_utils import TokenOutputStream

logger = logging.getLogger(__name__)


class FinishReason(enum.Enum):
    EOS = "stop"
    LENGTH = "length"


@dataclass(frozen=True)
class GenerationResult:
    text: str
    finish_reason: FinishReason
    prompt_tokens: int
    completion_tokens: int


class TextGeneration:
    """Runs the sampling loop for a single prompt."""

    def __init__(self, handle, config: SamplingConfig, eos_token: str = "</s>"):
        self.handle = handle
        self.config = config
        self.eos_token = eos_token
        self.tokenizer = TokenOutputStream(handle)
        self.logits_processor = LogitsProcessor(config, handle.vocab_size)
        self.session = handle.new_session()

    def run(self, prompt: str, max_tokens: int, cancel: threading.Event | None = None) -> GenerationResult:
        if max_tokens < 0:
            raise ValueError("max_tokens must be >= 0")

        self.tokenizer.clear()
        try:
            tokens = list(self.handle.tokenize(prompt))
        except Exception as e:
            raise GenerationError(None, e) from e
        prompt_len = len(tokens)

        eos_token = self.handle.token_id_for(self.eos_token)
        if eos_token is None:
            raise MissingSpecialTokenError(self.eos_token)

        text = []
        finish_reason = FinishReason.LENGTH
        for index in range(max_tokens):
            if cancel is not None and cancel.is_set():
                raise GenerationError(index, GenerationCancelled("generation cancelled"))

            context_size = 1 if index > 0 else len(tokens)
            start_pos = len(tokens) - context_size
            ctxt = tokens[start_pos:]
            try:
                logits = self.session.forward(ctxt, start_pos)
            except PromptserveError as e:
                raise GenerationError(index, e) from e
            except Exception as e:
                raise GenerationError(index, ForwardPassError(str(e))) from e

            try:
                next_token = self.logits_processor.sample(logits, tokens)
            except PromptserveError as e:
                raise GenerationError(index, e) from e
            tokens.append(next_token)

            if next_token == eos_token:
                finish_reason = FinishReason.EOS
                break
            try:
                fragment = self.tokenizer.next_token(next_token)
            except PromptserveError as e:
                raise GenerationError(index, e) from e
            if fragment is not None:
                logger.debug("step %d: emitted %r", index, fragment)
                text.append(fragment)

        completion_tokens = len(tokens) - prompt_len
        logger.info(
            "generation finished (%s): %d prompt tokens, %d generated",
            finish_reason.value,
            prompt_len,
            completion_tokens,
        )
        return GenerationResult(
            text="".join(text),
            finish_reason=finish_reason,
            prompt_tokens=prompt_len,
            completion_tokens=completion_tokens,
        )
