"""
Environment overrides and default value application for configuration.

This module handles:
- Realtime model/voice/endpoint overrides
- SIP transfer target override
- HTTP server port override
- Test mode flag
"""

import os
from typing import Any, Dict


def _section(config_data: Dict[str, Any], name: str) -> Dict[str, Any]:
    block = config_data.get(name)
    if not isinstance(block, dict):
        block = {}
    config_data[name] = block
    return block


def _env(name: str):
    value = os.getenv(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def apply_realtime_overrides(config_data: Dict[str, Any]) -> None:
    """
    Apply realtime endpoint/model overrides from environment variables.

    Environment variables:
    - REALTIME_MODEL: Realtime model (deployment name on Azure)
    - REALTIME_VOICE: Output voice
    - OPENAI_BASE: REST base URL used for accept/refer/hangup
    - REALTIME_WS_BASE: WebSocket base URL for the control channel
    - REALTIME_API_VERSION: Azure api-version query parameter

    Args:
        config_data: Configuration dictionary to modify in-place
    """
    realtime = _section(config_data, 'realtime')
    overrides = {
        'model': _env('REALTIME_MODEL'),
        'voice': _env('REALTIME_VOICE'),
        'base_url': _env('OPENAI_BASE'),
        'realtime_ws_url': _env('REALTIME_WS_BASE'),
        'api_version': _env('REALTIME_API_VERSION'),
    }
    for key, value in overrides.items():
        if value is not None:
            realtime[key] = value


def apply_transfer_overrides(config_data: Dict[str, Any]) -> None:
    """
    Apply human-handoff target override.

    Environment variables:
    - SIP_TARGET_URI: SIP URI the handoff_human tool refers callers to
    """
    target = _env('SIP_TARGET_URI')
    if target is not None:
        _section(config_data, 'transfer')['sip_target_uri'] = target


def apply_server_overrides(config_data: Dict[str, Any]) -> None:
    """
    Apply HTTP server bind overrides.

    Environment variables:
    - PORT: HTTP listen port (default: 8000)
    - HOST: HTTP bind address (default: 0.0.0.0)
    """
    server = _section(config_data, 'server')
    port = _env('PORT')
    if port is not None:
        try:
            server['port'] = int(port)
        except ValueError:
            raise ValueError(f"PORT must be an integer, got {port!r}")
    host = _env('HOST')
    if host is not None:
        server['host'] = host


def apply_test_mode(config_data: Dict[str, Any]) -> None:
    """
    Apply TEST_MODE (0|1). In test mode webhook signatures are not verified and
    credentials are optional.
    """
    test_mode = _env('TEST_MODE')
    if test_mode is not None:
        config_data['test_mode'] = test_mode == '1'
    config_data.setdefault('test_mode', False)


def apply_logging_defaults(config_data: Dict[str, Any]) -> None:
    """Mirror LOG_LEVEL into the logging block when set."""
    level = _env('LOG_LEVEL')
    if level is not None:
        _section(config_data, 'logging')['level'] = level.lower()
