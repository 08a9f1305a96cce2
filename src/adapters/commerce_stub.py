"""
Commerce probe stub adapter.

Reports whether the storefront's commerce subsystem is active. The
storefront runtime owns that fact; this adapter carries it in from
configuration so tracking can be disabled when commerce is absent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class CommerceStubAdapter:
    """
    Static commerce availability.

    This adapter satisfies the CommercePort protocol.
    """

    available: bool = True

    def is_available(self) -> bool:
        if not self.available:
            logger.debug("Commerce subsystem reported as inactive")
        return self.available


def create_commerce_stub(available: bool = True) -> CommerceStubAdapter:
    """Factory for commerce stub adapter."""
    return CommerceStubAdapter(available=available)
