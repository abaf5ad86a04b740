# Copyright (c) 2026 Promptserve. Licensed under the MIT License. See LICENSE.
"""Shared pytest fixtures: a tiny sentencepiece-style tokenizer and scripted models.

The fake tokenizer reproduces the two quirks the detokenizer exists for:
a leading ``▁`` space is dropped at the start of a decode window, and
``<0xHH>`` byte pieces only become a character once the whole UTF-8
sequence is present.
"""

from __future__ import annotations

import re

import numpy as np
import pytest

from promptserve.errors import DecodeError, ForwardPassError

PIECES = [
    "<unk>",   # 0
    "<s>",     # 1
    "</s>",    # 2
    "A",       # 3
    "b",       # 4
    "c",       # 5
    "d",       # 6
    "e",       # 7
    "▁Hello",  # 8
    ",",       # 9
    "▁world",  # 10
    "!",       # 11
    "Hel",     # 12
    "lo",      # 13
    "caf",     # 14
    "<0xC3>",  # 15
    "<0xA9>",  # 16
    "<bad>",   # 17  cannot be decoded
]
SPECIAL_IDS = {0, 1, 2}
BAD_ID = 17
VOCAB_SIZE = len(PIECES)

_BYTE_RE = re.compile(r"^<0x([0-9A-F]{2})>$")


class FakeTokenizer:
    """Greedy longest-match tokenizer over PIECES."""

    def __init__(self, pieces=PIECES):
        self.pieces = list(pieces)
        self._vocab = {p: i for i, p in enumerate(self.pieces)}

    def get_vocab(self):
        return dict(self._vocab)

    def encode(self, text, add_special_tokens=True):
        ids = [1] if add_special_tokens else []
        candidates = sorted(
            (
                p
                for i, p in enumerate(self.pieces)
                if i not in SPECIAL_IDS and i != BAD_ID and not _BYTE_RE.match(p)
            ),
            key=len,
            reverse=True,
        )
        text = text.replace(" ", "▁")
        pos = 0
        while pos < len(text):
            for piece in candidates:
                if text.startswith(piece, pos):
                    ids.append(self._vocab[piece])
                    pos += len(piece)
                    break
            else:
                ids.append(0)
                pos += 1
        return ids

    def decode(self, ids, skip_special_tokens=False):
        out = bytearray()
        for i in ids:
            if i == BAD_ID:
                raise ValueError(f"invalid token id {i}")
            if skip_special_tokens and i in SPECIAL_IDS:
                continue
            piece = self.pieces[i]
            m = _BYTE_RE.match(piece)
            if m:
                out.append(int(m.group(1), 16))
            else:
                out.extend(piece.replace("▁", " ").encode("utf-8"))
        text = out.decode("utf-8", errors="replace")
        return text[1:] if text.startswith(" ") else text


def one_hot(token_id: int, vocab_size: int = VOCAB_SIZE, value: float = 10.0) -> np.ndarray:
    logits = np.zeros(vocab_size, dtype=np.float32)
    logits[token_id] = value
    return logits


class ScriptedSession:
    """Forward session whose step ``i`` returns logits selecting ``script[i]``.

    An entry that is an exception instance is raised instead.  The last
    entry repeats once the script runs out.
    """

    def __init__(self, script, vocab_size: int = VOCAB_SIZE):
        self.script = list(script)
        self.vocab_size = vocab_size
        self.calls: list[tuple[list[int], int]] = []

    def forward(self, context_tokens, position_offset):
        self.calls.append((list(context_tokens), position_offset))
        step = min(len(self.calls) - 1, len(self.script) - 1)
        entry = self.script[step]
        if isinstance(entry, Exception):
            raise entry
        return one_hot(entry, self.vocab_size)


class FakeHandle:
    """Stand-in for ModelHandle: shared tokenizer, one scripted session per request."""

    def __init__(self, script, tokenizer=None, vocab_size: int = VOCAB_SIZE, logits_size: int | None = None):
        self.tokenizer = tokenizer or FakeTokenizer()
        self.vocab_size = vocab_size
        self.name = "fake-model"
        self._script = script
        self._logits_size = logits_size or vocab_size
        self.sessions: list[ScriptedSession] = []

    def new_session(self):
        session = ScriptedSession(self._script, self._logits_size)
        self.sessions.append(session)
        return session

    def tokenize(self, text):
        return self.tokenizer.encode(text, add_special_tokens=True)

    def token_id_for(self, token_str):
        return self.tokenizer.get_vocab().get(token_str)

    def decode(self, token_ids, skip_special_tokens=True):
        try:
            return self.tokenizer.decode(token_ids, skip_special_tokens=skip_special_tokens)
        except ValueError as e:
            raise DecodeError(token_ids, str(e)) from e


@pytest.fixture
def tokenizer() -> FakeTokenizer:
    return FakeTokenizer()


@pytest.fixture
def bcde_handle() -> FakeHandle:
    """Emits b, c, d, e and then </s>."""
    return FakeHandle([4, 5, 6, 7, 2])


@pytest.fixture
def failing_handle() -> FakeHandle:
    """Forward pass fails on the third step."""
    return FakeHandle([4, 5, ForwardPassError("device lost"), 2])
