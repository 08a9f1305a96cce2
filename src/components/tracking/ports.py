"""
Tracking component port definitions.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from src.components.metrics import MetricsStorePort
from src.core.services.ephemeral import EphemeralStorePort

__all__ = [
    "CommercePort",
    "EphemeralStorePort",
    "MetricsStorePort",
    "NotifierPort",
    "TimePort",
]


class NotifierPort(Protocol):
    """Outbound notification interface."""

    def publish(self, name: str, **payload: Any) -> object:
        """Publish a named notification."""
        ...


class TimePort(Protocol):
    """Time provider interface."""

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        ...


class CommercePort(Protocol):
    """Probe for the storefront's commerce subsystem."""

    def is_available(self) -> bool:
        """True when the commerce subsystem is installed and reachable."""
        ...
