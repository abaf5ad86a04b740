# Copyright (c) 2026 Promptserve. Licensed under the MIT License. See LICENSE.
"""
Incremental detokenization for generated text.

Decoding a trailing subword token on its own gives wrong text for many
tokenizers (split multi-byte characters, leading-space pieces), so the
stream always decodes the whole pending window and only hands out text once
it looks like a finished word.
"""

import logging

from promptserve.errors import DecodeError

logger = logging.getLogger(__name__)


class TokenOutputStream:
    """Turns token ids, fed one at a time, into final text fragments.

    ``tokenizer`` is anything with ``decode(ids, skip_special_tokens=...)``:
    a transformers tokenizer or a ModelHandle.
    """

    def __init__(self, tokenizer):
        self.tokenizer = tokenizer
        self.tokens: list[int] = []
        self.prev_index = 0
        self.current_index = 0

    def decode(self, tokens: list[int]) -> str:
        try:
            return self.tokenizer.decode(tokens, skip_special_tokens=True)
        except Exception as e:
            logger.error("cannot decode token window %s: %s", list(tokens), e)
            if isinstance(e, DecodeError):
                raise
            raise DecodeError(tokens, str(e)) from e

    def next_token(self, token_id: int) -> str | None:
        """Append ``token_id`` and return newly finalized text, if any.

        Text is released only when the pending window decodes to something
        longer than what was already released and ends on a letter.
        """
        if self.tokens:
            prev_text = self.decode(self.tokens[self.prev_index : self.current_index])
        else:
            prev_text = ""

        self.tokens.append(token_id)
        text = self.decode(self.tokens[self.prev_index :])
        if len(text) > len(prev_text) and text[-1].isalpha():
            self.prev_index = self.current_index
            self.current_index = len(self.tokens)
            return text[len(prev_text) :]
        return None

    def decode_rest(self) -> str | None:
        """Return the text still held back by ``next_token``, if any."""
        if self.tokens:
            prev_text = self.decode(self.tokens[self.prev_index : self.current_index])
        else:
            prev_text = ""
        text = self.decode(self.tokens[self.prev_index :])
        if len(text) > len(prev_text):
            return text[len(prev_text) :]
        return None

    def decode_all(self) -> str:
        return self.decode(self.tokens)

    def get_token(self, token_str: str) -> int | None:
        """Look up a (special) token string in the vocabulary."""
        return self.tokenizer.get_vocab().get(token_str)

    def clear(self):
        """Reset state for a new generation sequence."""
        self.tokens = []
        self.prev_index = 0
        self.current_index = 0
