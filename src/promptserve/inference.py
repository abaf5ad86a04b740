# Copyright (c) 2026 Promptserve. Licensed under the MIT License. See LICENSE.
"""Local generation from the terminal: one-shot or an interactive prompt loop."""

import os
import subprocess
import sys
import tempfile

from prompt_toolkit import prompt as better_input
from prompt_toolkit.key_binding import KeyBindings

from promptserve.errors import GenerationError
from promptserve.generation import TextGeneration


def _make_key_bindings():
    """Create key bindings for the prompt. Ctrl+G opens $EDITOR."""
    kb = KeyBindings()

    @kb.add("c-g")
    def _open_editor(event):
        editor = os.environ.get("VISUAL") or os.environ.get("EDITOR", "vi")
        buf = event.app.current_buffer
        with tempfile.NamedTemporaryFile(suffix=".txt", mode="w+", delete=False) as f:
            f.write(buf.text)
            tmp_path = f.name
        try:
            subprocess.call([editor, tmp_path])
            with open(tmp_path) as f:
                text = f.read()
            buf.text = text
            buf.cursor_position = len(text)
        finally:
            os.unlink(tmp_path)

    return kb


def generate_once(handle, sampling, prompt: str, max_tokens: int, eos_token: str = "</s>") -> str:
    """Run one generation and return its text."""
    return TextGeneration(handle, sampling, eos_token=eos_token).run(prompt, max_tokens).text


def run_prompt_loop(handle, sampling, max_tokens: int, eos_token: str = "</s>"):
    """Read prompts until 'q' or Ctrl+D and print each completion.

    Every prompt is an independent request; nothing carries over between
    turns.
    """
    kb = _make_key_bindings()
    print(f"Prompt {handle.name} (Ctrl+D or 'q' to quit, Ctrl+G for editor)")
    while True:
        try:
            query = better_input("> ", key_bindings=kb)
        except (EOFError, KeyboardInterrupt):
            break

        if query.strip() == "q":
            break
        if not query.strip():
            continue

        try:
            result = TextGeneration(handle, sampling, eos_token=eos_token).run(query, max_tokens)
        except GenerationError as e:
            print(f"Error: {e}", file=sys.stderr)
            continue
        print(f"Model Response: {result.text}")
        print(f"[{result.finish_reason.value}, {result.completion_tokens} tokens]")
