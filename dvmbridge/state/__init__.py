"""Runtime state for the DVM bridge."""

from .context import BridgeState, ConfigSnapshot, InboundFrame, create_bridge_state

__all__ = ["BridgeState", "ConfigSnapshot", "InboundFrame", "create_bridge_state"]
