# Copyright (c) 2026 Promptserve. Licensed under the MIT License. See LICENSE.
"""Shared utility functions used by the model loader and the generation loop."""

import json
import logging
import os

from transformers import AutoTokenizer

logger = logging.getLogger(__name__)


def load_tokenizer(model_path: str, trust_remote_code: bool = False):
    """Load the tokenizer from a model directory.

    Custom tokenizer classes registered through ``auto_map`` are only
    imported when ``trust_remote_code`` is set.
    """
    if trust_remote_code:
        logger.warning(
            "Custom code from %s may be executed. Only use --trust-remote-code "
            "with models you trust.",
            model_path,
        )
    return AutoTokenizer.from_pretrained(model_path, trust_remote_code=trust_remote_code)


def load_default_params(model_dir: str, overrides: dict | None = None) -> dict:
    """Sampling params: built-in defaults < generation_config.json < overrides.

    ``None`` values in ``overrides`` are ignored.
    """
    defaults = {
        "seed": 598797954,
        "temperature": 0.0,
        "top_p": None,
        "top_k": None,
        "repeat_penalty": 1.1,
        "repeat_last_n": 64,
    }
    # generation_config.json key for each sampling field
    hf_names = {
        "temperature": "temperature",
        "top_p": "top_p",
        "top_k": "top_k",
        "repeat_penalty": "repetition_penalty",
    }
    gen_config_path = os.path.join(model_dir, "generation_config.json")
    if os.path.exists(gen_config_path):
        with open(gen_config_path, encoding="utf-8") as f:
            gen_config = json.load(f)
        # Sampling settings in generation_config only apply when do_sample is on.
        if gen_config.get("do_sample"):
            for key, hf_key in hf_names.items():
                if hf_key in gen_config:
                    defaults[key] = gen_config[hf_key]
            # transformers uses top_k=0 for "no top-k filtering"
            if not defaults["top_k"]:
                defaults["top_k"] = None
    for key, value in (overrides or {}).items():
        if value is not None and key in defaults:
            defaults[key] = value
    return defaults
