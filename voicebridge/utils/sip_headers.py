"""
SIP header helpers for the call-incoming webhook.

The webhook carries the INVITE headers as a list of {"name", "value"} objects.
"""

import re
from typing import Any, Iterable, Optional

SIP_PHONE_PATTERN = re.compile(r"sip:(\+?\d+)@")


def find_header(sip_headers: Iterable[Any], name: str) -> Optional[dict]:
    """First header whose name matches case-insensitively; malformed entries are skipped."""
    wanted = name.lower()
    for header in sip_headers or ():
        if not isinstance(header, dict):
            continue
        header_name = header.get("name")
        if isinstance(header_name, str) and header_name.lower() == wanted:
            return header
    return None


def extract_caller_phone(sip_headers: Iterable[Any]) -> Optional[str]:
    """
    Extract the caller's number from the From header.

    Examples:
        "sip:+15551234567@example.com"               -> "+15551234567"
        '"John Doe" <sip:15551234567@example.com>'   -> "15551234567"
        "sip:username@example.com"                   -> None
    """
    header = find_header(sip_headers, "from")
    if header is None:
        return None
    value = header.get("value")
    if not isinstance(value, str):
        return None
    match = SIP_PHONE_PATTERN.search(value)
    return match.group(1) if match else None
