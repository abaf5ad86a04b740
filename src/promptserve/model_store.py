# Copyright (c) 2026 Promptserve. Licensed under the MIT License. See LICENSE.
"""Model store: pull model weights and tokenizer from HuggingFace and load them."""

import json
import logging
import os
import re
from pathlib import Path

from promptserve.errors import StartupError

logger = logging.getLogger(__name__)

MODELS_DIR = Path.home() / ".promptserve" / "models"
WEIGHT_INDEX = "model.safetensors.index.json"

# Downloaded alongside the weights; only tokenizer.json and config.json are required.
_REQUIRED_FILES = ("config.json", "tokenizer.json")
_OPTIONAL_FILES = (
    "tokenizer_config.json",
    "special_tokens_map.json",
    "tokenizer.model",
    "generation_config.json",
)

_HF_ID_RE = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")


def _looks_like_hf_id(arg: str) -> bool:
    """Return True if arg looks like a HuggingFace model ID (org/name)."""
    if arg.startswith(("/", ".", "~")):
        return False
    return bool(_HF_ID_RE.match(arg))


def resolve_model_dir(arg: str) -> str | None:
    """Resolve a model argument to a local directory, if one exists.

    An existing directory is returned unchanged.  A HuggingFace model ID is
    looked up under ``~/.promptserve/models/``.  Returns ``None`` when the
    model still has to be pulled.
    """
    expanded = os.path.expanduser(arg)
    if os.path.isdir(expanded):
        return expanded

    if _looks_like_hf_id(arg):
        local = MODELS_DIR / arg
        if (local / "config.json").is_file() and (local / "tokenizer.json").is_file():
            return str(local)
        return None

    raise StartupError(f"Model '{arg}' is neither a directory nor a HuggingFace model ID")


def read_weight_map(index_path: str | Path) -> set[str]:
    """Return the distinct shard filenames listed in a safetensors index."""
    try:
        with open(index_path, encoding="utf-8") as f:
            index = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        raise StartupError(f"Could not read weight index {index_path}: {e}") from e

    weight_map = index.get("weight_map") if isinstance(index, dict) else None
    if not isinstance(weight_map, dict):
        raise StartupError(f"Expected an object for weight map in {index_path}")

    shards = {v for v in weight_map.values() if isinstance(v, str)}
    if not shards:
        raise StartupError(f"Weight map in {index_path} lists no shard files")
    return shards


def _download(repo_id: str, filename: str, local_dir: Path, revision: str | None, token: str | None) -> str:
    from huggingface_hub import hf_hub_download

    try:
        return hf_hub_download(
            repo_id,
            filename,
            revision=revision,
            token=token,
            local_dir=str(local_dir),
        )
    except Exception as e:
        cls_name = type(e).__name__
        if cls_name == "RepositoryNotFoundError":
            raise StartupError(f"Repository '{repo_id}' not found on HuggingFace") from e
        elif cls_name == "GatedRepoError":
            raise StartupError(
                f"'{repo_id}' is a gated repository. Check that HF_TOKEN has access to it."
            ) from e
        elif cls_name in ("EntryNotFoundError", "RemoteEntryNotFoundError"):
            raise FileNotFoundError(f"{filename} not found in '{repo_id}'") from e
        raise StartupError(f"Failed to download {filename} from '{repo_id}': {e}") from e


def pull_model(model_id: str, revision: str | None = None, token: str | None = None, force: bool = False) -> Path:
    """Download config, tokenizer and every safetensors shard of a model."""
    local_dir = MODELS_DIR / model_id

    has_weights = (local_dir / WEIGHT_INDEX).is_file() or (local_dir / "model.safetensors").is_file()
    if not force and has_weights and resolve_model_dir(model_id) is not None:
        logger.info("Model '%s' already present at %s", model_id, local_dir)
        return local_dir

    local_dir.mkdir(parents=True, exist_ok=True)
    logger.info("Pulling %s (revision %s) ...", model_id, revision or "main")

    for filename in _REQUIRED_FILES:
        try:
            _download(model_id, filename, local_dir, revision, token)
        except FileNotFoundError as e:
            raise StartupError(str(e)) from e
    for filename in _OPTIONAL_FILES:
        try:
            _download(model_id, filename, local_dir, revision, token)
        except FileNotFoundError:
            logger.debug("%s has no %s, skipping", model_id, filename)

    try:
        index_path = _download(model_id, WEIGHT_INDEX, local_dir, revision, token)
    except FileNotFoundError:
        # Unsharded checkpoint
        try:
            _download(model_id, "model.safetensors", local_dir, revision, token)
        except FileNotFoundError as e:
            raise StartupError(f"No safetensors weights in '{model_id}'") from e
    else:
        for shard in sorted(read_weight_map(index_path)):
            try:
                _download(model_id, shard, local_dir, revision, token)
            except FileNotFoundError as e:
                raise StartupError(f"Weight index references missing shard: {e}") from e

    logger.info("Downloaded to %s", local_dir)
    return local_dir


def load_model(model_dir: str, device: str = "cpu", dtype: str = "float32", trust_remote_code: bool = False):
    """Load weights and tokenizer from ``model_dir`` into a ModelHandle."""
    import torch
    from transformers import AutoModelForCausalLM

    from promptserve.model import ModelHandle, resolve_dtype
    from promptserve.utils import load_tokenizer

    if not os.path.isfile(os.path.join(model_dir, "config.json")):
        raise StartupError(f"config.json not found in {model_dir}")

    try:
        torch_device = torch.device(device)
        tokenizer = load_tokenizer(model_dir, trust_remote_code=trust_remote_code)
        model = AutoModelForCausalLM.from_pretrained(
            model_dir,
            torch_dtype=resolve_dtype(dtype),
            trust_remote_code=trust_remote_code,
        )
    except (OSError, ValueError, RuntimeError) as e:
        raise StartupError(f"Failed to load model from {model_dir}: {e}") from e

    model.to(torch_device)
    model.eval()
    name = os.path.basename(os.path.normpath(model_dir))
    logger.info("Loaded %s on %s (%s)", name, torch_device, dtype)
    return ModelHandle(model, tokenizer, torch_device, name=name)


def load_session(
    model_id: str,
    revision: str | None = None,
    token: str | None = None,
    device: str = "cpu",
    dtype: str = "float32",
    sampling_overrides: dict | None = None,
    trust_remote_code: bool = False,
):
    """Resolve ``model_id`` locally (pulling it if needed) and load it.

    Returns ``(handle, sampling_config)``; the sampling config merges the
    model's generation_config.json with ``sampling_overrides``.
    """
    from promptserve.sampling import SamplingConfig
    from promptserve.utils import load_default_params

    model_dir = resolve_model_dir(model_id)
    if model_dir is None:
        model_dir = str(pull_model(model_id, revision=revision, token=token))
    handle = load_model(model_dir, device=device, dtype=dtype, trust_remote_code=trust_remote_code)
    params = load_default_params(model_dir, sampling_overrides)
    return handle, SamplingConfig(**params)
