# Copyright (c) 2026 Promptserve. Licensed under the MIT License. See LICENSE.
"""Unified CLI entry point for promptserve."""

import argparse
import logging
import os
import sys

from pydantic import ValidationError

from promptserve.config import Settings, require_token
from promptserve.errors import MissingSpecialTokenError, PromptserveError, StartupError


def _settings(args) -> Settings:
    """Environment/.env settings with CLI flags applied on top.

    Flags go through the same validation as the environment, so an invalid
    value fails here instead of on the first request.
    """
    overrides = {
        key: value
        for key, value in vars(args).items()
        if key in Settings.model_fields and value is not None
    }
    try:
        return Settings(**overrides)
    except ValidationError as e:
        raise StartupError(f"Invalid configuration: {e}") from e


def _load(settings: Settings, trust_remote_code: bool = False):
    """Pull (if needed) and load the model; returns (handle, sampling config)."""
    from promptserve.model_store import load_session

    handle, sampling = load_session(
        settings.model_id,
        revision=settings.revision,
        token=require_token(settings),
        device=settings.device,
        dtype=settings.dtype,
        sampling_overrides=settings.sampling_overrides(),
        trust_remote_code=trust_remote_code,
    )
    if handle.token_id_for(settings.eos_token) is None:
        raise MissingSpecialTokenError(settings.eos_token)
    return handle, sampling


def _cmd_serve(args):
    """Start the API server."""
    try:
        settings = _settings(args)
        os.environ["TOKENIZERS_PARALLELISM"] = "false"
        # Load before uvicorn starts so startup failures exit here with a message.
        handle, sampling = _load(settings, trust_remote_code=args.trust_remote_code)

        from promptserve import LLM, Server

        llm = LLM(
            settings.model_id,
            max_tokens=settings.max_tokens,
            eos_token=settings.eos_token,
            handle=handle,
            sampling=sampling,
        )
        server = Server(llm)
    except (PromptserveError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    server.run(host=args.host, port=args.port)


def _cmd_generate(args):
    """Generate text locally, once or interactively."""
    try:
        settings = _settings(args)
        handle, sampling = _load(settings, trust_remote_code=args.trust_remote_code)

        from promptserve.inference import generate_once, run_prompt_loop

        if args.prompt is None:
            run_prompt_loop(handle, sampling, settings.max_tokens, eos_token=settings.eos_token)
        else:
            print(generate_once(handle, sampling, args.prompt, settings.max_tokens, eos_token=settings.eos_token))
    except (PromptserveError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


def _cmd_pull(args):
    """Pull model weights and tokenizer from HuggingFace."""
    try:
        settings = _settings(args)
        token = require_token(settings)

        from promptserve.model_store import pull_model

        local_dir = pull_model(settings.model_id, revision=settings.revision, token=token, force=args.force)
        print(f"Model available at {local_dir}")
    except PromptserveError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


def _add_model_args(p):
    p.add_argument("--model-id", dest="model_id", help="HuggingFace model ID or local directory")
    p.add_argument("--revision", help="Branch, tag, or commit hash")
    p.add_argument("--device", help="Torch device (default: cpu)")
    p.add_argument("--dtype", choices=["float32", "float16", "bfloat16"], help="Weight dtype (default: float32)")


def _add_sampling_args(p):
    p.add_argument("--max-tokens", dest="max_tokens", type=int, help="Token budget per prompt (default: 2000)")
    p.add_argument("--seed", type=int, help="Sampling seed")
    p.add_argument("--temperature", type=float, help="Sampling temperature (0 = greedy)")
    p.add_argument("--top-p", dest="top_p", type=float, help="Nucleus sampling threshold")
    p.add_argument("--top-k", dest="top_k", type=int, help="Keep only the k most likely tokens")
    p.add_argument("--repeat-penalty", dest="repeat_penalty", type=float, help="Repetition penalty (1 = off)")
    p.add_argument("--repeat-last-n", dest="repeat_last_n", type=int, help="Repetition penalty window")
    p.add_argument("--eos-token", dest="eos_token", help="End-of-sequence token string (default: </s>)")


def _add_remote_code_arg(p):
    p.add_argument(
        "--trust-remote-code", action="store_true",
        help="Allow custom model and tokenizer code shipped with the model repository",
    )


def main():
    parser = argparse.ArgumentParser(
        prog="promptserve",
        description="promptserve: prompt-in, text-out HTTP service for causal language models",
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    sub = parser.add_subparsers(dest="command")

    # --- serve ---
    p_serve = sub.add_parser("serve", help="Start the HTTP server")
    _add_model_args(p_serve)
    _add_sampling_args(p_serve)
    _add_remote_code_arg(p_serve)
    p_serve.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    p_serve.add_argument("--port", type=int, default=8000, help="Port to bind to")
    p_serve.set_defaults(func=_cmd_serve)

    # --- generate ---
    p_gen = sub.add_parser("generate", help="Generate text locally (interactive without --prompt)")
    _add_model_args(p_gen)
    _add_sampling_args(p_gen)
    _add_remote_code_arg(p_gen)
    p_gen.add_argument("--prompt", help="Prompt text; omit for an interactive loop")
    p_gen.set_defaults(func=_cmd_generate)

    # --- pull ---
    p_pull = sub.add_parser("pull", help="Download model weights and tokenizer from HuggingFace")
    _add_model_args(p_pull)
    p_pull.add_argument("--force", "-f", action="store_true", help="Re-download even if present")
    p_pull.set_defaults(func=_cmd_pull)

    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    args.func(args)


if __name__ == "__main__":
    main()
