# Copyright (c) 2026 Promptserve. Licensed under the MIT License. See LICENSE.
"""Next-token selection: repetition penalty, greedy, top-k and nucleus sampling."""

from collections import Counter
from dataclasses import dataclass

import numpy as np

from promptserve.errors import SamplingConfigError

# Temperatures below this are treated as greedy decoding.
_GREEDY_EPS = 1e-7


@dataclass(frozen=True)
class SamplingConfig:
    """Per-session sampling parameters. ``None`` disables an option."""

    seed: int = 598797954
    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    repeat_penalty: float = 1.1
    repeat_last_n: int = 64

    def __post_init__(self):
        if self.temperature is not None and self.temperature < 0:
            raise SamplingConfigError("temperature must be >= 0")
        if self.top_p is not None and not (0 < self.top_p <= 1.0):
            raise SamplingConfigError("top_p must be in (0, 1]")
        if self.top_k is not None and self.top_k < 1:
            raise SamplingConfigError("top_k must be >= 1")
        if self.repeat_penalty <= 0:
            raise SamplingConfigError("repeat_penalty must be > 0")
        if self.repeat_last_n < 0:
            raise SamplingConfigError("repeat_last_n must be >= 0")

    @property
    def greedy(self) -> bool:
        return self.temperature is None or self.temperature < _GREEDY_EPS


def apply_repeat_penalty(logits: np.ndarray, penalty: float, context) -> np.ndarray:
    """Penalize every token in ``context`` by ``penalty ** occurrences``.

    Positive logits are divided, negative ones multiplied, so a penalty
    above 1 always pushes a repeated token towards lower probability.
    """
    out = np.array(logits, dtype=np.float32, copy=True)
    for token_id, count in Counter(context).items():
        if not 0 <= token_id < out.shape[0]:
            continue
        factor = penalty**count
        if out[token_id] >= 0:
            out[token_id] /= factor
        else:
            out[token_id] *= factor
    return out


def softmax(logits: np.ndarray) -> np.ndarray:
    shifted = logits - np.max(logits)
    exp = np.exp(shifted)
    return exp / exp.sum()


class LogitsProcessor:
    """Picks the next token id from a logits vector.

    Holds the session's random generator, seeded once, so a fixed seed and
    identical inputs reproduce the same sequence of draws.
    """

    def __init__(self, config: SamplingConfig, vocab_size: int):
        self.config = config
        self.vocab_size = vocab_size
        self._rng = np.random.default_rng(config.seed)

    def sample(self, logits, recent_tokens) -> int:
        """Pick the next id. Only the last ``repeat_last_n`` entries of the
        ``recent_tokens`` sequence are read."""
        logits = np.asarray(logits, dtype=np.float32).reshape(-1)
        if logits.shape[0] != self.vocab_size:
            raise SamplingConfigError(
                f"logits vector has {logits.shape[0]} entries, "
                f"expected vocabulary size {self.vocab_size}"
            )

        cfg = self.config
        if cfg.repeat_penalty != 1.0 and cfg.repeat_last_n > 0:
            window = recent_tokens[-cfg.repeat_last_n :]
            logits = apply_repeat_penalty(logits, cfg.repeat_penalty, window)

        if cfg.greedy:
            return int(np.argmax(logits))

        probs = softmax(logits.astype(np.float64) / cfg.temperature)
        if cfg.top_k is not None and cfg.top_k < probs.shape[0]:
            probs = self._top_k(probs, cfg.top_k)
        if cfg.top_p is not None and cfg.top_p < 1.0:
            probs = self._top_p(probs, cfg.top_p)
        return self._draw(probs)

    @staticmethod
    def _top_k(probs: np.ndarray, k: int) -> np.ndarray:
        keep = np.argpartition(-probs, k - 1)[:k]
        filtered = np.zeros_like(probs)
        filtered[keep] = probs[keep]
        return filtered

    @staticmethod
    def _top_p(probs: np.ndarray, top_p: float) -> np.ndarray:
        # Smallest prefix of the sorted distribution whose mass reaches top_p.
        order = np.argsort(-probs, kind="stable")
        cumulative = np.cumsum(probs[order])
        cutoff = int(np.searchsorted(cumulative, top_p * cumulative[-1])) + 1
        keep = order[:cutoff]
        filtered = np.zeros_like(probs)
        filtered[keep] = probs[keep]
        return filtered

    def _draw(self, probs: np.ndarray) -> int:
        total = probs.sum()
        if not np.isfinite(total) or total <= 0:
            raise SamplingConfigError("no candidate tokens left to sample from")
        return int(self._rng.choice(probs.shape[0], p=probs / total))
