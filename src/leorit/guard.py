"""Guard result type shared by every lifecycle check."""

from dataclasses import dataclass
from typing import Any

# Rejection and revision reasons shorter than this (after stripping) are refused.
MIN_REASON_LENGTH = 10


@dataclass(frozen=True)
class GuardResult:
    """Outcome of a guard check.

    Guards never raise for a denied action; they report it. ``reason`` is a
    human-readable explanation suitable for showing to the actor, and ``gate``
    names the failing condition where a check is composed of several.
    """

    allowed: bool
    reason: str | None = None
    gate: str | None = None

    def __bool__(self) -> bool:
        return self.allowed

    @classmethod
    def ok(cls) -> "GuardResult":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str, gate: str | None = None) -> "GuardResult":
        return cls(allowed=False, reason=reason, gate=gate)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"allowed": self.allowed}
        if self.reason is not None:
            result["reason"] = self.reason
        if self.gate is not None:
            result["gate"] = self.gate
        return result


def check_reason(
    reason: str | None, missing_message: str, too_short_message: str
) -> GuardResult:
    """Require a non-empty reason of at least MIN_REASON_LENGTH characters."""
    text = (reason or "").strip()
    if not text:
        return GuardResult.deny(missing_message, gate="reason")
    if len(text) < MIN_REASON_LENGTH:
        return GuardResult.deny(too_short_message, gate="reason")
    return GuardResult.ok()
