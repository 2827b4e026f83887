"""Settings and per-session state of NIP-42 client authentication."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from .permission import Permission


def _permission(name: str, value: Any) -> Optional[Permission]:
    if value is None:
        return None
    if not isinstance(value, Mapping):
        raise ValueError(f"{name}: expected a mapping")
    return Permission.from_dict(value)


@dataclass(frozen=True)
class AuthSetting:
    """Configuration of the auth extension.

    ``req`` guards reading commands (REQ and COUNT), ``event`` guards EVENT.
    """

    enabled: bool = False
    req: Optional[Permission] = None
    event: Optional[Permission] = None

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "AuthSetting":
        """Build the setting from a config mapping; missing keys take defaults."""
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise ValueError("auth: expected a mapping")
        enabled = data.get("enabled", False)
        if not isinstance(enabled, bool):
            raise ValueError("enabled: expected a boolean")
        return cls(
            enabled=enabled,
            req=_permission("req", data.get("req")),
            event=_permission("event", data.get("event")),
        )


@dataclass(frozen=True)
class AuthState:
    """Where a session stands: waiting on a challenge, or authenticated."""

    value: str
    authed: bool = False

    @classmethod
    def challenge(cls, value: Optional[str] = None) -> "AuthState":
        """A pending challenge; a fresh random one when ``value`` is None."""
        return cls(str(uuid.uuid4()) if value is None else value, False)

    @classmethod
    def authenticated(cls, pubkey: str) -> "AuthState":
        """A session authenticated as ``pubkey``."""
        return cls(pubkey, True)

    @property
    def pubkey(self) -> Optional[str]:
        """The authenticated public key, or None while still challenged."""
        return self.value if self.authed else None

    @property
    def challenge_text(self) -> Optional[str]:
        """The pending challenge, or None once authenticated."""
        return None if self.authed else self.value