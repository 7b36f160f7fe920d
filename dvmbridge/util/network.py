"""Network address lookup for the STATE/IPAddr report."""

from __future__ import annotations

import logging
import socket

import psutil

from ..const import NO_ADDRESS

logger = logging.getLogger("dvmbridge.network")


def local_ipv4_address(interface: str | None = None) -> str:
    """Return the IPv4 address of *interface*, or of the first non-loopback one."""
    try:
        interfaces = psutil.net_if_addrs()
    except OSError as exc:
        logger.warning("Unable to enumerate network interfaces: %s", exc)
        return NO_ADDRESS

    if interface is not None:
        candidates = {interface: interfaces.get(interface, [])}
    else:
        candidates = interfaces

    for name, addresses in candidates.items():
        for address in addresses:
            if address.family != socket.AF_INET:
                continue
            if address.address.startswith("127."):
                continue
            return address.address
        if interface is not None:
            logger.warning("Interface %s has no IPv4 address", name)
    return NO_ADDRESS
