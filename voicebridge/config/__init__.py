"""
Configuration system for voicebridge.

Centralized configuration management using Pydantic v2 for validation and
type safety. Values come from an optional YAML file (with ${VAR} expansion)
and environment variables; secrets come from the environment only.
"""

import os
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field
import structlog

from voicebridge.config.loaders import (
    DEFAULT_CONFIG_PATH,
    load_yaml_with_env_expansion,
    resolve_config_path,
)
from voicebridge.config.security import inject_realtime_credentials
from voicebridge.config.defaults import (
    apply_logging_defaults,
    apply_realtime_overrides,
    apply_server_overrides,
    apply_test_mode,
    apply_transfer_overrides,
)
from voicebridge.prompts import GREETING_PROMPT, SYSTEM_PROMPT

logger = structlog.get_logger(__name__)


class TurnDetectionConfig(BaseModel):
    type: str = Field(default="server_vad")
    interrupt_response: bool = Field(default=True)


class RealtimeConfig(BaseModel):
    """OpenAI / Azure OpenAI Realtime SIP endpoint settings."""
    api_key: Optional[str] = None
    webhook_secret: Optional[str] = None
    model: str = Field(default="gpt-realtime")
    voice: str = Field(default="marin")
    base_url: str = Field(default="https://api.openai.com")
    realtime_ws_url: str = Field(default="wss://api.openai.com/v1/realtime")
    api_version: Optional[str] = None
    transcription_model: str = Field(default="gpt-4o-transcribe")
    turn_detection: TurnDetectionConfig = Field(default_factory=TurnDetectionConfig)
    request_timeout_sec: float = Field(default=10.0)

    @property
    def is_azure(self) -> bool:
        return ".openai.azure.com" in (self.base_url or "")


class TimingConfig(BaseModel):
    # Tuned for Azure SIP responsiveness
    turn_response_delay_ms: int = Field(default=150, ge=0)
    greeting_barge_guard_ms: int = Field(default=2000, ge=0)
    min_response_gap_ms: int = Field(default=500, ge=0)


class TransferConfig(BaseModel):
    sip_target_uri: Optional[str] = None


class ServerConfig(BaseModel):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000, gt=0, lt=65536)
    sse_interval_sec: float = Field(default=2.0, gt=0)
    sse_heartbeat_sec: float = Field(default=15.0, gt=0)


class AnalyticsConfig(BaseModel):
    retained_calls: int = Field(default=100, ge=0)


class LLMConfig(BaseModel):
    initial_greeting: str = GREETING_PROMPT
    prompt: str = SYSTEM_PROMPT


class LoggingConfig(BaseModel):
    """Top-level logging configuration for the service."""
    level: str = Field(default="info")  # debug|info|warning|error|critical


class AppConfig(BaseModel):
    realtime: RealtimeConfig = Field(default_factory=RealtimeConfig)
    timing: TimingConfig = Field(default_factory=TimingConfig)
    transfer: TransferConfig = Field(default_factory=TransferConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    analytics: AnalyticsConfig = Field(default_factory=AnalyticsConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    test_mode: bool = Field(default=False)
    debug_events: bool = Field(default=False)
    # Per-tool settings, keyed by tool name
    tools: Dict[str, Any] = Field(default_factory=dict)


def load_config(path: Optional[str] = None) -> AppConfig:
    """
    Load and validate configuration.

    Args:
        path: YAML file (absolute or relative to project root). Defaults to
            $VOICEBRIDGE_CONFIG or config/voicebridge.yaml. A missing default
            file is not an error; a missing explicit file is.

    Returns:
        Validated AppConfig instance

    Raises:
        FileNotFoundError: If an explicitly requested file doesn't exist
        yaml.YAMLError: If YAML parsing fails
        pydantic.ValidationError: If values fail validation
    """
    explicit = path is not None or bool(os.getenv("VOICEBRIDGE_CONFIG"))
    path = resolve_config_path(path or os.getenv("VOICEBRIDGE_CONFIG") or DEFAULT_CONFIG_PATH)

    # Phase 1: Load YAML file with environment variable expansion
    if os.path.exists(path) or explicit:
        config_data = load_yaml_with_env_expansion(path)
    else:
        logger.info("No configuration file found; using defaults and environment", path=path)
        config_data = {}

    # Phase 2: Security - inject credentials from environment variables only
    inject_realtime_credentials(config_data)

    # Phase 3: Environment overrides
    apply_realtime_overrides(config_data)
    apply_transfer_overrides(config_data)
    apply_server_overrides(config_data)
    apply_test_mode(config_data)
    apply_logging_defaults(config_data)

    # Phase 4: Validate and return
    return AppConfig(**config_data)


def validate_config(config: AppConfig) -> Tuple[List[str], List[str]]:
    """Validate configuration for deployment.

    Returns:
        (errors, warnings): errors block startup, warnings are logged only.
    """
    errors: List[str] = []
    warnings: List[str] = []

    if not config.test_mode:
        if not config.realtime.api_key:
            errors.append("OPENAI_API_KEY is required")
        if not config.realtime.webhook_secret:
            errors.append("OPENAI_WEBHOOK_SECRET is required")
    else:
        warnings.append("TEST_MODE enabled: webhook signatures are NOT verified")

    if not config.realtime.realtime_ws_url.startswith(("ws://", "wss://")):
        errors.append(f"realtime_ws_url must be a ws:// or wss:// URL: {config.realtime.realtime_ws_url}")
    if not config.realtime.base_url.startswith(("http://", "https://")):
        errors.append(f"base_url must be an http(s) URL: {config.realtime.base_url}")

    if config.realtime.is_azure and not config.realtime.api_version:
        warnings.append("Azure endpoint configured without REALTIME_API_VERSION")
    if not config.transfer.sip_target_uri:
        warnings.append("SIP_TARGET_URI not set; handoff_human will fail and callers get an apology")
    if config.logging.level.lower() == "debug":
        warnings.append("Debug logging enabled (transcripts and event payloads are logged)")

    return errors, warnings


__all__ = [
    'TurnDetectionConfig',
    'RealtimeConfig',
    'TimingConfig',
    'TransferConfig',
    'ServerConfig',
    'AnalyticsConfig',
    'LLMConfig',
    'LoggingConfig',
    'AppConfig',
    'load_config',
    'validate_config',
]
