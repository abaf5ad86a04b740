# Copyright (c) 2026 Promptserve. Licensed under the MIT License. See LICENSE.
"""promptserve: prompt-in, text-out HTTP service for causal language models"""

import os as _os
_os.environ.setdefault("TRANSFORMERS_NO_ADVISORY_WARNINGS", "1")

__all__ = ["Server", "LLM", "TextGeneration", "TokenOutputStream", "SamplingConfig"]


def __getattr__(name: str):
    if name == "LLM":
        from .server._llm import LLM

        return LLM
    if name == "Server":
        from .server._server import Server

        return Server
    if name == "TextGeneration":
        from .generation import TextGeneration

        return TextGeneration
    if name == "TokenOutputStream":
        from .token_utils import TokenOutputStream

        return TokenOutputStream
    if name == "SamplingConfig":
        from .sampling import SamplingConfig

        return SamplingConfig
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
