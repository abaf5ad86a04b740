# Copyright (c) 2026 Promptserve. Licensed under the MIT License. See LICENSE.
"""Process configuration.

Read once at startup from the environment (``PROMPTSERVE_*`` plus the
HuggingFace ``HF_TOKEN``) or a ``.env`` file in the working directory.
CLI flags take precedence over anything set here.
"""

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from promptserve.errors import StartupError

DEFAULT_MODEL_ID = "mistralai/Mistral-7B-v0.1"
DEFAULT_REVISION = "26bca36bde8333b5d7f72e9ed20ccda6a618af24"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="PROMPTSERVE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        protected_namespaces=(),
    )

    hf_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices("HF_TOKEN", "PROMPTSERVE_HF_TOKEN"),
        description="HuggingFace access token used to pull the model",
    )
    model_id: str = Field(default=DEFAULT_MODEL_ID, description="HuggingFace model ID or local directory")
    revision: str | None = Field(default=DEFAULT_REVISION, description="Branch, tag, or commit hash")
    device: str = "cpu"
    dtype: str = "float32"
    max_tokens: int = Field(default=2000, ge=0, description="Token budget per /prompt request")
    eos_token: str = "</s>"

    # Sampling; None falls back to generation_config.json, then built-in defaults.
    seed: int | None = None
    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    repeat_penalty: float | None = None
    repeat_last_n: int | None = None

    def sampling_overrides(self) -> dict:
        return {
            "seed": self.seed,
            "temperature": self.temperature,
            "top_p": self.top_p,
            "top_k": self.top_k,
            "repeat_penalty": self.repeat_penalty,
            "repeat_last_n": self.repeat_last_n,
        }


def require_token(settings: Settings) -> str:
    """Return the HuggingFace token or fail startup with a clear message."""
    if not settings.hf_token:
        raise StartupError(
            "Failed to retrieve HuggingFace token. "
            "The environment variable 'HF_TOKEN' is not found."
        )
    return settings.hf_token
