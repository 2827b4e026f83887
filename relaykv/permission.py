"""Access rules for relay commands, keyed by ip and public key."""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, FrozenSet, Iterable, Mapping, Optional, Sequence


class PermissionDenied(Exception):
    """Raised when a permission check fails; ``reason`` says which rule."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


def _as_list(name: str, value: Any) -> Optional[FrozenSet[str]]:
    if value is None:
        return None
    if isinstance(value, (str, bytes)) or not isinstance(value, Iterable):
        raise ValueError(f"{name}: expected a list of strings")
    items = list(value)
    for item in items:
        if not isinstance(item, str):
            raise ValueError(f"{name}: expected a list of strings")
    return frozenset(items)


@dataclass(frozen=True)
class Permission:
    """White and black lists applied to one kind of command.

    A list left as None is not checked at all.
    """

    ip_whitelist: Optional[FrozenSet[str]] = None
    pubkey_whitelist: Optional[FrozenSet[str]] = None
    ip_blacklist: Optional[FrozenSet[str]] = None
    pubkey_blacklist: Optional[FrozenSet[str]] = None
    event_pubkey_whitelist: Optional[FrozenSet[str]] = None
    event_pubkey_blacklist: Optional[FrozenSet[str]] = None
    allow_mentioning_whitelisted_pubkeys: bool = False

    def __post_init__(self) -> None:
        for spec in fields(self):
            if spec.name == "allow_mentioning_whitelisted_pubkeys":
                continue
            object.__setattr__(self, spec.name, _as_list(spec.name, getattr(self, spec.name)))

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "Permission":
        """Build a permission from settings; missing keys take their defaults."""
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise ValueError("permission: expected a mapping")
        known = {spec.name for spec in fields(cls)}
        values = {name: value for name, value in data.items() if name in known}
        allow = values.get("allow_mentioning_whitelisted_pubkeys", False)
        if not isinstance(allow, bool):
            raise ValueError("allow_mentioning_whitelisted_pubkeys: expected a boolean")
        return cls(**values)


def _mentioned_pubkeys(event_tags: Optional[Iterable[Sequence[str]]]) -> Iterable[str]:
    for tag in event_tags or ():
        if len(tag) > 1 and tag[0] == "p":
            yield tag[1]


def verify_permission(
    permission: Optional[Permission],
    pubkey: Optional[str],
    event_pubkey: Optional[str],
    event_tags: Optional[Iterable[Sequence[str]]],
    ip: str,
) -> None:
    """Check a request against ``permission``; raise PermissionDenied if refused.

    ``pubkey`` is the authenticated client key (None if not authenticated),
    ``event_pubkey`` and ``event_tags`` describe the event being written.
    """
    if permission is None:
        return

    if permission.ip_whitelist is not None and ip not in permission.ip_whitelist:
        raise PermissionDenied("ip not in whitelist")
    if permission.ip_blacklist is not None and ip in permission.ip_blacklist:
        raise PermissionDenied("ip in blacklist")

    if event_pubkey is not None:
        whitelist = permission.event_pubkey_whitelist
        if whitelist is not None:
            mentioned = permission.allow_mentioning_whitelisted_pubkeys and any(
                key in whitelist for key in _mentioned_pubkeys(event_tags)
            )
            if not mentioned and event_pubkey not in whitelist:
                raise PermissionDenied("event author pubkey not in whitelist")
        blacklist = permission.event_pubkey_blacklist
        if blacklist is not None and event_pubkey in blacklist:
            raise PermissionDenied("event author pubkey in blacklist")

    if permission.pubkey_whitelist is not None:
        if pubkey is None:
            raise PermissionDenied("NIP-42 auth required")
        if pubkey not in permission.pubkey_whitelist:
            raise PermissionDenied("pubkey not in whitelist")
    if permission.pubkey_blacklist is not None:
        if pubkey is None:
            raise PermissionDenied("NIP-42 auth required")
        if pubkey in permission.pubkey_blacklist:
            raise PermissionDenied("pubkey in blacklist")