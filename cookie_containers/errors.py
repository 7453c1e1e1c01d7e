"""Error taxonomy for the container engine.

Only stage-level failures abort a switch. Per-item failures (one cookie, one tab)
are recorded in a BatchResult and logged instead of raised.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class ContainerError(Exception):
    """Structured engine error, renderable at the message boundary."""

    action: str
    reason: str
    details: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return f"{self.action} failed: {self.reason}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": True,
            "kind": type(self).__name__,
            "action": self.action,
            "reason": self.reason,
            "details": self.details,
        }


class ContainerNotFound(ContainerError):
    def __init__(self, container_id: str) -> None:
        super().__init__(
            action="switch",
            reason=f"Container not found: {container_id}",
            details={"containerId": container_id},
        )
        self.container_id = container_id


class SwitchInProgress(ContainerError):
    def __init__(self, container_id: str) -> None:
        super().__init__(
            action="switch",
            reason="Another container switch is in progress",
            details={"containerId": container_id},
        )


class CredentialWriteFailure(ContainerError):
    """A single cookie insertion or removal failed."""

    def __init__(self, operation: str, identity: tuple[str, str, str, str | None], reason: str) -> None:
        domain, name, path, store_id = identity
        super().__init__(
            action=operation,
            reason=reason,
            details={"domain": domain, "name": name, "path": path, "storeId": store_id},
        )


class AddressParseFailure(ContainerError):
    def __init__(self, address: Any, reason: str = "unparseable address") -> None:
        super().__init__(action="extract_domain", reason=reason, details={"address": str(address)[:200]})


class ChannelFailure(Exception):
    """Transport failure: bridge down, RPC error/timeout, CDP socket error."""


__all__ = [
    "AddressParseFailure",
    "ChannelFailure",
    "ContainerError",
    "ContainerNotFound",
    "CredentialWriteFailure",
    "SwitchInProgress",
]
