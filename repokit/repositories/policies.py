"""
Cross-cutting write and filter policies.

TimestampPolicy stamps creation/update times into payloads; SoftDeletePolicy
rewrites filters and payloads so deletes become updates of a timestamp
field. Both return new dicts and leave caller data untouched.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional


class _Unset:
    """Payload value meaning "clear this field" ($unset / NULL)."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET = _Unset()

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class TimestampPolicy:
    """
    Stamps created/updated timestamps when enabled; a no-op otherwise.

    Attributes:
        enabled: Whether timestamps are managed
        created_at_field: Field set on create (never touched on update)
        updated_at_field: Field set on create and on every update path
        clock: Source of the current time
    """

    def __init__(
        self,
        enabled: bool,
        created_at_field: str,
        updated_at_field: str,
        clock: Clock = utc_now,
    ):
        self.enabled = enabled
        self.created_at_field = created_at_field
        self.updated_at_field = updated_at_field
        self.clock = clock

    def on_create(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        payload = dict(data)
        if self.enabled:
            now = self.clock()
            payload.setdefault(self.created_at_field, now)
            payload.setdefault(self.updated_at_field, now)
        return payload

    def on_update(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        payload = dict(data)
        if self.enabled:
            payload[self.updated_at_field] = self.clock()
        return payload


class SoftDeletePolicy:
    """
    Filter and payload rewrites for soft deletion.

    A record is live while ``field`` is null and deleted once it holds a
    timestamp. The implicit clause replaces any caller clause on ``field``.
    """

    def __init__(self, field: str, clock: Clock = utc_now):
        self.field = field
        self.clock = clock

    def live(self, filter: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        return {**(filter or {}), self.field: {"isNull": True}}

    def deleted(self, filter: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        return {**(filter or {}), self.field: {"notNull": True}}

    def deletion(self) -> Dict[str, Any]:
        return {self.field: self.clock()}

    def restoration(self) -> Dict[str, Any]:
        return {self.field: UNSET}
