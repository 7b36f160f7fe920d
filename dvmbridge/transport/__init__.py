"""Transport abstractions (serial, MQTT) for the DVM bridge."""

from .mqtt import MessagingSession
from .serial import InstrumentProtocol, InstrumentTransport

__all__ = [
    "InstrumentProtocol",
    "InstrumentTransport",
    "MessagingSession",
]
