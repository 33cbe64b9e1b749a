from __future__ import annotations

import re

SESSION_ID_PATTERN = r"^[A-Za-z0-9_.-]{1,64}$"
_SESSION_ID_RE = re.compile(SESSION_ID_PATTERN)
_DEVICE_SUFFIX_RE = re.compile(r"^([^:@]+):\d+@(.+)$")

GROUP_SERVER = "g.us"


def is_valid_session_id(value: str) -> bool:
    return bool(_SESSION_ID_RE.fullmatch(value)) and value not in {".", ".."}


def decode_jid(jid: str | None) -> str | None:
    """Strip the device suffix from a jid (``user:12@server`` -> ``user@server``)."""
    if not jid:
        return jid
    match = _DEVICE_SUFFIX_RE.match(jid)
    if match is None:
        return jid
    return f"{match.group(1)}@{match.group(2)}"


def is_group_jid(jid: str) -> bool:
    return jid.endswith(f"@{GROUP_SERVER}")


def jid_user(jid: str) -> str:
    return jid.split("@", 1)[0].split(":", 1)[0]


def mention(jid: str) -> str:
    return f"@{jid_user(jid)}"
