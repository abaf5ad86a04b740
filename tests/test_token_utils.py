# Copyright (c) 2026 Promptserve. Licensed under the MIT License. See LICENSE.
"""Tests for the incremental detokenizer."""

from __future__ import annotations

import pytest

from conftest import BAD_ID, FakeTokenizer
from promptserve.errors import DecodeError
from promptserve.token_utils import TokenOutputStream


def feed(stream: TokenOutputStream, ids: list[int]) -> list[str]:
    return [frag for frag in (stream.next_token(i) for i in ids) if frag is not None]


@pytest.fixture()
def stream(tokenizer: FakeTokenizer) -> TokenOutputStream:
    return TokenOutputStream(tokenizer)


class TestNextToken:
    def test_single_letters_flush_immediately(self, stream: TokenOutputStream) -> None:
        assert feed(stream, [4, 5, 6, 7]) == ["b", "c", "d", "e"]

    def test_punctuation_is_held_until_next_word(self, stream: TokenOutputStream) -> None:
        assert stream.next_token(8) == "Hello"
        assert stream.next_token(9) is None
        assert stream.next_token(10) == ", world"
        assert stream.next_token(11) is None
        assert stream.decode_rest() == "!"

    def test_leading_space_is_kept_inside_window(self, stream: TokenOutputStream) -> None:
        # "▁world" alone would decode to "world"; decoded after "Hello" it keeps its space.
        assert feed(stream, [8, 10]) == ["Hello", " world"]

    def test_subword_pieces_join(self, stream: TokenOutputStream) -> None:
        assert feed(stream, [12, 13]) == ["Hel", "lo"]

    def test_partial_utf8_sequence_is_held_back(self, stream: TokenOutputStream) -> None:
        assert stream.next_token(14) == "caf"
        assert stream.next_token(15) is None
        assert stream.next_token(16) == "é"

    def test_cursors_advance_only_on_emit(self, stream: TokenOutputStream) -> None:
        stream.next_token(8)
        assert (stream.prev_index, stream.current_index) == (0, 1)
        stream.next_token(9)
        assert (stream.prev_index, stream.current_index) == (0, 1)
        stream.next_token(10)
        assert (stream.prev_index, stream.current_index) == (1, 3)
        assert stream.prev_index <= stream.current_index <= len(stream.tokens)

    def test_special_tokens_produce_nothing(self, stream: TokenOutputStream) -> None:
        assert stream.next_token(1) is None


class TestFlushProperties:
    @pytest.mark.parametrize(
        "ids",
        [
            [8, 9, 10, 11],
            [4, 5, 6, 7],
            [14, 15, 16, 9, 8],
            [12, 13, 9, 10, 11, 11],
        ],
    )
    def test_fragments_are_prefix_of_full_decode(self, tokenizer: FakeTokenizer, ids: list[int]) -> None:
        stream = TokenOutputStream(tokenizer)
        emitted = ""
        for i in ids:
            frag = stream.next_token(i)
            if frag is not None:
                emitted += frag
            # Never re-emits: output so far is always a prefix of the full decode.
            assert stream.decode_all().startswith(emitted)

        full = tokenizer.decode(ids, skip_special_tokens=True)
        rest = stream.decode_rest() or ""
        assert emitted + rest == full


class TestHelpers:
    def test_get_token(self, stream: TokenOutputStream) -> None:
        assert stream.get_token("</s>") == 2
        assert stream.get_token("<eos>") is None

    def test_decode_rest_empty(self, stream: TokenOutputStream) -> None:
        assert stream.decode_rest() is None
        stream.next_token(4)
        assert stream.decode_rest() is None

    def test_clear_resets_state(self, stream: TokenOutputStream) -> None:
        feed(stream, [8, 9, 10])
        stream.clear()
        assert stream.tokens == []
        assert stream.prev_index == 0
        assert stream.current_index == 0
        assert stream.next_token(4) == "b"


class TestDecodeErrors:
    def test_decode_failure_raises_decode_error(self, stream: TokenOutputStream) -> None:
        stream.next_token(4)
        with pytest.raises(DecodeError) as info:
            stream.next_token(BAD_ID)
        assert BAD_ID in info.value.tokens

    def test_decode_failure_is_logged(self, stream: TokenOutputStream, caplog) -> None:
        with caplog.at_level("ERROR", logger="promptserve.token_utils"):
            with pytest.raises(DecodeError):
                stream.next_token(BAD_ID)
        assert str(BAD_ID) in caplog.text
