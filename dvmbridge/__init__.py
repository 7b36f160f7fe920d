"""DVM bridge package initialisation."""

__version__ = "1.0.0"

import logging
import sys

logger = logging.getLogger(__name__)


def _check_dependencies():
    """Verify the MQTT client stack is new enough for aiomqtt."""
    try:
        import paho.mqtt.client as mqtt

        # aiomqtt 2.x drives paho-mqtt with CallbackAPIVersion.VERSION2.
        if not hasattr(mqtt, "CallbackAPIVersion"):
            logger.critical(
                "FATAL: Incompatible paho-mqtt version detected. "
                "This bridge requires paho-mqtt 2.x with CallbackAPIVersion support."
            )
            sys.exit(1)

    except ImportError:
        # A missing install raises naturally when aiomqtt is imported.
        pass


_check_dependencies()
