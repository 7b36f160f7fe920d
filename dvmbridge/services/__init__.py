"""Service layer for the DVM bridge daemon."""

from .runtime import BridgeController

__all__ = ["BridgeController"]
