# Copyright (c) 2026 Promptserve. Licensed under the MIT License. See LICENSE.
"""
Model handle and per-request forward sessions.

A ModelHandle wraps the loaded causal LM and its tokenizer. It is shared by
every request and never mutated after load. Each request opens its own
ForwardSession, which keeps the key/value cache for that request so later
steps only feed the newest token.
"""

import logging

import numpy as np
import torch

from promptserve.errors import DecodeError, ForwardPassError

logger = logging.getLogger(__name__)

_DTYPES = {
    "float32": torch.float32,
    "float16": torch.float16,
    "bfloat16": torch.bfloat16,
}


def resolve_dtype(name: str) -> torch.dtype:
    try:
        return _DTYPES[name]
    except KeyError:
        raise ValueError(
            f"Unsupported dtype {name!r}. Choose one of: {', '.join(_DTYPES)}"
        ) from None


class ForwardSession:
    """One request's view of the model: a growing key/value cache."""

    def __init__(self, model, device: torch.device):
        self._model = model
        self._device = device
        self._past = None
        self._seen = 0

    @property
    def cached_tokens(self) -> int:
        return self._seen

    def forward(self, context_tokens: list[int], position_offset: int) -> np.ndarray:
        """Run the model on ``context_tokens`` placed at ``position_offset``.

        Returns the logits for the position after the last context token.
        The offset must equal the number of tokens already cached (0 starts
        a fresh cache).
        """
        if position_offset == 0:
            self._past = None
            self._seen = 0
        elif position_offset != self._seen:
            raise ForwardPassError(
                f"position offset {position_offset} does not match "
                f"{self._seen} cached tokens"
            )
        if not context_tokens:
            raise ForwardPassError("empty context window")

        input_ids = torch.tensor([list(context_tokens)], dtype=torch.long, device=self._device)
        positions = torch.arange(
            position_offset,
            position_offset + len(context_tokens),
            dtype=torch.long,
            device=self._device,
        ).unsqueeze(0)
        try:
            with torch.inference_mode():
                out = self._model(
                    input_ids=input_ids,
                    position_ids=positions,
                    past_key_values=self._past,
                    use_cache=True,
                )
        except (RuntimeError, ValueError, IndexError) as e:
            raise ForwardPassError(f"forward pass failed: {e}") from e

        self._past = out.past_key_values
        self._seen = position_offset + len(context_tokens)
        return out.logits[0, -1].to(torch.float32).cpu().numpy()


class ModelHandle:
    """Read-only bundle of model weights, tokenizer and device."""

    def __init__(self, model, tokenizer, device: torch.device, name: str = "unknown"):
        self.model = model
        self.tokenizer = tokenizer
        self.device = device
        self.name = name

    @property
    def vocab_size(self) -> int:
        return int(self.model.config.vocab_size)

    def new_session(self) -> ForwardSession:
        return ForwardSession(self.model, self.device)

    def tokenize(self, text: str) -> list[int]:
        return list(self.tokenizer.encode(text, add_special_tokens=True))

    def token_id_for(self, token_str: str) -> int | None:
        return self.tokenizer.get_vocab().get(token_str)

    def decode(self, token_ids: list[int], skip_special_tokens: bool = True) -> str:
        try:
            return self.tokenizer.decode(token_ids, skip_special_tokens=skip_special_tokens)
        except Exception as e:
            raise DecodeError(token_ids, str(e)) from e
