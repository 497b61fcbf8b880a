"""
Security-critical configuration injection.

This module handles:
- OpenAI API key injection (ONLY from environment variables)
- Webhook signing secret injection (ONLY from environment variables)

SECURITY POLICY:
- API keys and webhook secrets MUST NEVER be in YAML files
- All credentials MUST come from environment variables only
"""

import os
from typing import Any, Dict


def _is_nonempty_string(val: Any) -> bool:
    """Check if value is a string with non-whitespace content."""
    return isinstance(val, str) and val.strip() != ""


def _section(config_data: Dict[str, Any], name: str) -> Dict[str, Any]:
    block = config_data.get(name)
    if not isinstance(block, dict):
        block = {}
    config_data[name] = block
    return block


def inject_realtime_credentials(config_data: Dict[str, Any]) -> None:
    """
    Inject the OpenAI API key and webhook secret from environment variables ONLY.

    Any value present in YAML is discarded so that a secret committed to a config
    file never takes effect.

    Environment variables:
    - OPENAI_API_KEY (required unless test mode)
    - OPENAI_WEBHOOK_SECRET (required unless test mode)

    Args:
        config_data: Configuration dictionary to modify in-place
    """
    realtime = _section(config_data, 'realtime')
    realtime.pop('api_key', None)
    realtime.pop('webhook_secret', None)

    api_key = os.getenv('OPENAI_API_KEY')
    if _is_nonempty_string(api_key):
        realtime['api_key'] = api_key.strip()

    webhook_secret = os.getenv('OPENAI_WEBHOOK_SECRET')
    if _is_nonempty_string(webhook_secret):
        realtime['webhook_secret'] = webhook_secret.strip()
