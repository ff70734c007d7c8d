"""
Small helpers shared by the factory chain, the aggregator and the CLI.
"""

import logging
import socket
import sys
from typing import Dict, List

import psutil

logger = logging.getLogger(__name__)


# Metric (power of 1000) units, same scale as the "kB" used in verbose output.
BYTE_UNITS = ("B", "kB", "MB", "GB", "TB", "PB", "EB", "ZB", "YB")


def byte_size(num_bytes: int, precision: int = 1) -> str:
    """
    Render a byte count as a short human-readable string.

    Counts below 1000 are shown as whole bytes, larger counts are scaled to
    the biggest metric unit that keeps the value at or above 1.

        byte_size(0)        -> "0 B"
        byte_size(512)      -> "512 B"
        byte_size(1580)     -> "1.6 kB"
        byte_size(2500000)  -> "2.5 MB"
    """
    num_bytes = int(num_bytes or 0)
    if abs(num_bytes) < 1000:
        return f"{num_bytes} B"

    value = float(num_bytes)
    unit = 0
    while abs(value) >= 1000 and unit < len(BYTE_UNITS) - 1:
        value /= 1000
        unit += 1
    return f"{value:.{precision}f} {BYTE_UNITS[unit]}"


def get_ip_list() -> List[str]:
    """
    Return the IPv4 address of every network interface on this host.

    Order follows the interface order reported by the OS.
    """
    addresses = []
    for iface, addrs in psutil.net_if_addrs().items():
        for addr in addrs:
            if addr.family == socket.AF_INET and addr.address not in addresses:
                addresses.append(addr.address)
    logger.debug(f"Interfaces: {addresses}")
    return addresses


def is_builtin_module(name: str) -> bool:
    """Check whether a name refers to a standard-library (or built-in) module."""
    top_level = name.split(".", 1)[0]
    return top_level in sys.stdlib_module_names or top_level in sys.builtin_module_names


def memory_usage() -> Dict[str, int]:
    """
    Snapshot of this process's memory, in bytes.

    Keys mirror the verbose "process.memoryUsage" payload:

        rss        resident set size
        heapTotal  virtual memory size
        heapUsed   memory unique to this process (USS), rss where unavailable
        external   memory shared with other processes (0 where unavailable)
    """
    process = psutil.Process()
    info = process.memory_info()
    try:
        used = process.memory_full_info().uss
    except (psutil.AccessDenied, AttributeError):
        used = info.rss
    return {
        "rss": info.rss,
        "heapTotal": info.vms,
        "heapUsed": used,
        "external": getattr(info, "shared", 0),
    }
