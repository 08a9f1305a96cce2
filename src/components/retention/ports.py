"""
Retention component port definitions.
"""

from __future__ import annotations

from src.components.metrics import MetricsStorePort, TimePort
from src.core.services.ephemeral import EphemeralStorePort

__all__ = ["EphemeralStorePort", "MetricsStorePort", "TimePort"]
