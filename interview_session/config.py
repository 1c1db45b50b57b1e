"""
Runtime configuration for the interview service and CLI.

Values come from the environment (optionally a ``.env`` file next to the
project root) and are validated strictly: a bad port or empty host fails
fast with RuntimeError instead of surfacing later as a confusing bind error.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv


__all__ = ["ServiceConfig", "load_service_config", "DEFAULT_CORS_ORIGINS"]


_env_path = Path(__file__).parent.parent / ".env"


DEFAULT_CORS_ORIGINS: tuple[str, ...] = (
    "http://localhost:3000",
    "http://localhost:5173",
)


@dataclass(frozen=True)
class ServiceConfig:
    """Runtime config for the interview service."""

    host: str = "0.0.0.0"
    port: int = 8780
    data_dir: Path = Path("data")
    login_url: str = "/login"
    interviewer_name: str = "Ehi"
    openai_model: str = "gpt-5-mini"
    azure_endpoint: Optional[str] = None
    azure_key: Optional[str] = None
    azure_deployment: Optional[str] = None
    azure_api_version: str = "2024-08-01-preview"
    google_speech_api_key: Optional[str] = None
    stt_language: str = "en-US"
    elevenlabs_api_key: Optional[str] = None
    elevenlabs_voice_id: str = "21m00Tcm4TlvDq8ikWAM"
    elevenlabs_model_id: str = "eleven_multilingual_v2"
    widget_agent_id: Optional[str] = None
    widget_script_url: str = "https://unpkg.com/@elevenlabs/convai-widget-embed"
    cors_origins: tuple[str, ...] = field(default=DEFAULT_CORS_ORIGINS)

    @property
    def uses_azure(self) -> bool:
        return bool(self.azure_endpoint and self.azure_key and self.azure_deployment)


def _optional(env: Mapping[str, str], name: str) -> Optional[str]:
    value = (env.get(name) or "").strip()
    return value or None


def _required_default(env: Mapping[str, str], name: str, default: str) -> str:
    value = (env.get(name, default) or "").strip()
    if not value:
        raise RuntimeError(f"{name} resolved to empty value.")
    return value


def load_service_config(
    env: Optional[Mapping[str, str]] = None,
    load_env_file: bool = True,
) -> ServiceConfig:
    """
    Load service config from the environment with strict validation.

    Args:
        env: Mapping to read instead of ``os.environ`` (used by tests).
        load_env_file: Load ``.env`` before reading ``os.environ``.

    Returns:
        Validated ServiceConfig.

    Raises:
        RuntimeError: If a value is empty or out of range, or if Azure
            OpenAI is only partially configured.
    """
    if env is None:
        if load_env_file:
            load_dotenv(_env_path)
        env = os.environ

    host = _required_default(env, "SERVICE_HOST", "0.0.0.0")

    port_raw = _required_default(env, "SERVICE_PORT", "8780")
    try:
        port = int(port_raw)
    except ValueError as exc:
        raise RuntimeError(f"SERVICE_PORT must be an integer. Got: {port_raw}") from exc
    if port < 1 or port > 65535:
        raise RuntimeError(f"SERVICE_PORT must be in range 1-65535. Got: {port}.")

    data_dir = Path(_required_default(env, "DATA_DIR", "data")).expanduser()

    azure = {
        "AZURE_OPENAI_ENDPOINT": _optional(env, "AZURE_OPENAI_ENDPOINT"),
        "AZURE_OPENAI_KEY": _optional(env, "AZURE_OPENAI_KEY"),
        "AZURE_OPENAI_DEPLOYMENT": _optional(env, "AZURE_OPENAI_DEPLOYMENT"),
    }
    if any(azure.values()) and not all(azure.values()):
        missing = ", ".join(name for name, value in azure.items() if not value)
        raise RuntimeError(f"Azure OpenAI is partially configured. Missing: {missing}")

    cors_raw = _optional(env, "CORS_ORIGINS")
    cors_origins = (
        tuple(origin.strip() for origin in cors_raw.split(",") if origin.strip())
        if cors_raw
        else DEFAULT_CORS_ORIGINS
    )

    return ServiceConfig(
        host=host,
        port=port,
        data_dir=data_dir,
        login_url=_required_default(env, "LOGIN_URL", "/login"),
        interviewer_name=_required_default(env, "INTERVIEWER_NAME", "Ehi"),
        openai_model=_required_default(env, "OPENAI_MODEL", "gpt-5-mini"),
        azure_endpoint=azure["AZURE_OPENAI_ENDPOINT"],
        azure_key=azure["AZURE_OPENAI_KEY"],
        azure_deployment=azure["AZURE_OPENAI_DEPLOYMENT"],
        azure_api_version=_required_default(env, "AZURE_OPENAI_API_VERSION", "2024-08-01-preview"),
        google_speech_api_key=_optional(env, "GOOGLE_SPEECH_API_KEY"),
        stt_language=_required_default(env, "STT_LANGUAGE", "en-US"),
        elevenlabs_api_key=_optional(env, "ELEVENLABS_API_KEY"),
        elevenlabs_voice_id=_required_default(env, "ELEVENLABS_VOICE_ID", "21m00Tcm4TlvDq8ikWAM"),
        elevenlabs_model_id=_required_default(env, "ELEVENLABS_MODEL_ID", "eleven_multilingual_v2"),
        widget_agent_id=_optional(env, "WIDGET_AGENT_ID"),
        widget_script_url=_required_default(
            env, "WIDGET_SCRIPT_URL", "https://unpkg.com/@elevenlabs/convai-widget-embed"
        ),
        cors_origins=cors_origins,
    )
