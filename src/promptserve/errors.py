# Copyright (c) 2026 Promptserve. Licensed under the MIT License. See LICENSE.
"""Exception hierarchy for promptserve.

Everything derives from PromptserveError so the HTTP layer and the CLI can
catch one type at the boundary.
"""


class PromptserveError(Exception):
    """Base exception for all promptserve errors."""


class StartupError(PromptserveError):
    """The service cannot start serving.

    Raised for a missing credential, an unreachable weight/vocabulary
    source or malformed weight-index metadata.
    """


class DecodeError(PromptserveError):
    """The tokenizer could not turn a token window into text."""

    def __init__(self, tokens: list[int], reason: str = ""):
        self.tokens = list(tokens)
        msg = f"cannot decode tokens {self.tokens}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class SamplingConfigError(PromptserveError):
    """Sampling parameters or the logits vector are inconsistent."""


class ForwardPassError(PromptserveError):
    """The model forward pass failed for one step."""


class MissingSpecialTokenError(PromptserveError):
    """The vocabulary lacks a required special token (e.g. ``</s>``)."""

    def __init__(self, token: str):
        self.token = token
        super().__init__(f"cannot find the {token} token in the vocabulary")


class GenerationCancelled(PromptserveError):
    """A cancel signal was observed between two generation steps."""


class GenerationError(PromptserveError):
    """A generation request was aborted.

    ``step`` is the index of the failing step, or ``None`` when the failure
    happened before the first step. ``cause`` is the underlying error.
    """

    def __init__(self, step: int | None, cause: Exception):
        self.step = step
        self.cause = cause
        where = "before the first step" if step is None else f"at step {step}"
        super().__init__(f"generation failed {where}: {cause}")
