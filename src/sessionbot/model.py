"""Session domain types (lifecycle state, status snapshots)."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime


class ConnectionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    STOPPED = "stopped"
    ERROR = "error"

    @property
    def is_live(self) -> bool:
        return self in (ConnectionState.CONNECTING, ConnectionState.CONNECTED)


class StopReason(str, enum.Enum):
    REQUESTED = "requested"
    LOGGED_OUT = "logged_out"
    RECONNECT_EXHAUSTED = "reconnect_exhausted"
    RECONNECT = "reconnect"


@dataclass(frozen=True, slots=True)
class SessionInfo:
    session_id: str
    state: ConnectionState
    reconnect_attempts: int
    max_reconnect_attempts: int
    created_at: datetime
    started_at: datetime
    last_activity: datetime
    running: bool

    def uptime_s(self, now: datetime) -> float:
        return max(0.0, (now - self.started_at).total_seconds())


def format_uptime(seconds: float) -> str:
    total = int(seconds)
    hours, remainder = divmod(total, 3600)
    minutes = remainder // 60
    return f"{hours}h {minutes}m"
