"""Button identifiers and their typed variants.

Identifiers follow ``btn_<family>_<segments...>``. Native replies may carry
the bare form (``ping``), legacy clients echo the prefixed form
(``btn_ping``); both normalize to the same variant.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TypeAlias

BUTTON_PREFIX = "btn_"

PRIVACY_SETTINGS = ("lastseen", "profile", "status", "groupadd", "disappear")
PRIVACY_LEVELS = ("all", "contacts", "none")
# 0 disables; the others are 24h, 7d and 90d in seconds.
DISAPPEAR_DURATIONS = (0, 86400, 604800, 7776000)


class CoreAction(str, enum.Enum):
    MENU = "menu"
    PING = "ping"
    OWNER = "owner"
    PLAY = "play"
    STATUS = "status"
    PLUGINS = "plugins"
    CONTACT_CALL = "contact_call"
    CONTACT_EMAIL = "contact_email"
    CONTACT_SUPPORT = "contact_support"


class VcfScope(str, enum.Enum):
    ALL = "all"
    ADMINS = "admins"


class TagTarget(str, enum.Enum):
    ALL = "all"
    ADMINS = "admins"
    DEFAULT = "default"
    CUSTOM = "custom"


class ViewAction(str, enum.Enum):
    INFO = "info"
    INFO_FULL = "info_full"
    HELP = "help"
    BACK = "back"
    DOWNLOAD = "download"


class UrlAction(str, enum.Enum):
    HELP = "help"
    EXAMPLE = "example"
    COPY = "copy"
    NEW = "new"
    UPLOAD = "upload"


class PrivacyMenuAction(str, enum.Enum):
    SHOW = "show"
    BACK = "back"
    MORE = "more"


@dataclass(frozen=True, slots=True)
class CoreButton:
    action: CoreAction


@dataclass(frozen=True, slots=True)
class VcfButton:
    scope: VcfScope


@dataclass(frozen=True, slots=True)
class TagButton:
    target: TagTarget


@dataclass(frozen=True, slots=True)
class ViewButton:
    action: ViewAction
    media_type: str | None = None


@dataclass(frozen=True, slots=True)
class UrlButton:
    action: UrlAction
    service: str | None = None


@dataclass(frozen=True, slots=True)
class PrivacyMenuButton:
    action: PrivacyMenuAction
    setting: str | None = None


@dataclass(frozen=True, slots=True)
class PrivacySetButton:
    setting: str
    value: str


@dataclass(frozen=True, slots=True)
class UnknownButton:
    button_id: str


ButtonAction: TypeAlias = (
    CoreButton
    | VcfButton
    | TagButton
    | ViewButton
    | UrlButton
    | PrivacyMenuButton
    | PrivacySetButton
    | UnknownButton
)

_UPLOAD_SERVICES = frozenset({"tmpfiles", "catbox"})
_MEDIA_TYPES = frozenset({"image", "video", "audio", "document"})


def normalize_button_id(button_id: str) -> str:
    value = button_id.strip()
    if value.startswith(BUTTON_PREFIX):
        return value
    return f"{BUTTON_PREFIX}{value}"


def is_legacy_button(body: str) -> bool:
    return body.startswith(BUTTON_PREFIX)


def _enum_value(kind: type[enum.Enum], value: str) -> enum.Enum | None:
    try:
        return kind(value)
    except ValueError:
        return None


def parse_button(button_id: str) -> ButtonAction:
    """Classify a (possibly unprefixed) identifier into its typed variant."""
    normalized = normalize_button_id(button_id)
    rest = normalized[len(BUTTON_PREFIX) :]
    segments = normalized.split("_")

    core = _enum_value(CoreAction, rest)
    if core is not None:
        return CoreButton(core)

    family = segments[1] if len(segments) > 1 else ""
    tail = "_".join(segments[2:])

    match family:
        case "vcf":
            scope = _enum_value(VcfScope, tail)
            if scope is not None:
                return VcfButton(scope)
        case "tag":
            target = _enum_value(TagTarget, tail)
            if target is not None:
                return TagButton(target)
        case "view":
            if len(segments) == 4 and segments[2] == "download":
                if segments[3] in _MEDIA_TYPES:
                    return ViewButton(ViewAction.DOWNLOAD, media_type=segments[3])
            else:
                view = _enum_value(ViewAction, tail)
                if view is not None and view is not ViewAction.DOWNLOAD:
                    return ViewButton(view)
        case "url":
            if tail in _UPLOAD_SERVICES:
                return UrlButton(UrlAction.UPLOAD, service=tail)
            url = _enum_value(UrlAction, tail)
            if url is not None and url is not UrlAction.UPLOAD:
                return UrlButton(url)
        case "priv":
            return _parse_privacy(normalized, segments)

    return UnknownButton(normalized)


def _parse_privacy(normalized: str, segments: list[str]) -> ButtonAction:
    # btn_priv_set_<setting>_<value>: fixed positions 3 and 4.
    if len(segments) == 5 and segments[2] == "set":
        setting, value = segments[3], segments[4]
        if setting in PRIVACY_SETTINGS and value:
            return PrivacySetButton(setting=setting, value=value)
        return UnknownButton(normalized)
    if len(segments) == 3:
        token = segments[2]
        if token in PRIVACY_SETTINGS:
            return PrivacyMenuButton(PrivacyMenuAction.SHOW, setting=token)
        if token == "back":
            return PrivacyMenuButton(PrivacyMenuAction.BACK)
        if token == "more":
            return PrivacyMenuButton(PrivacyMenuAction.MORE)
    return UnknownButton(normalized)


def privacy_set_id(setting: str, value: str | int) -> str:
    return f"{BUTTON_PREFIX}priv_set_{setting}_{value}"
