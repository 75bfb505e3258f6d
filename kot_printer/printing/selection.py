"""
Target device selection when the operator did not name a printer.

The policy is deterministic and permissive: it only fails for an empty device
list. Status reports are treated as hints because platforms report them
unreliably; a list where nothing looks usable still yields its first device.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import Dict, List, Optional

from kot_printer.core.config import DEFAULT_NAME_PATTERNS
from kot_printer.printing.devices import Device, DeviceStatus
from kot_printer.printing.errors import NoDeviceFound

logger = logging.getLogger(__name__)

# Which statuses count as usable. "paused" is usable because output queues
# on the device until it resumes.
STATUS_USABILITY: Dict[DeviceStatus, bool] = {
    DeviceStatus.IDLE: True,
    DeviceStatus.BUSY: True,
    DeviceStatus.PROCESSING: True,
    DeviceStatus.PAUSED: True,
    DeviceStatus.ERROR: False,
    DeviceStatus.UNKNOWN: False,
}

USABLE_STATUSES = frozenset(s for s, ok in STATUS_USABILITY.items() if ok)


def is_usable(device: Device) -> bool:
    return STATUS_USABILITY.get(device.status, False)


# A direct connection check is stricter than selection: a paused device can
# still be picked for a job, but it is not reported as ready.
READY_STATUSES = frozenset({DeviceStatus.IDLE, DeviceStatus.BUSY, DeviceStatus.PROCESSING})


def is_ready(device: Device) -> bool:
    return device.status in READY_STATUSES


def match_name_pattern(devices: Sequence[Device], patterns: Iterable[str]) -> Optional[Device]:
    """
    Return the first device whose name contains a pattern, trying patterns in
    order so earlier patterns take priority. Matching is case-insensitive.
    """
    lowered = [(d, d.name.lower()) for d in devices]
    for pattern in patterns:
        needle = pattern.lower()
        if not needle:
            continue
        for device, name in lowered:
            if needle in name:
                return device
    return None


def select_device(devices: Sequence[Device], name_patterns: Iterable[str] = DEFAULT_NAME_PATTERNS) -> Device:
    """
    Choose one device:
    1) fail with NoDeviceFound when the list is empty
    2) the device flagged as default, if exactly one is
    3) among usable devices, the first name-pattern match, else the first usable one
    4) the first device in the list regardless of status

    Raises:
        NoDeviceFound if `devices` is empty.
    """
    if not devices:
        raise NoDeviceFound("No printer found. Please connect a printer.")

    defaults = [d for d in devices if d.is_default]
    if len(defaults) == 1:
        logger.debug("Selected default device %s", defaults[0].name)
        return defaults[0]

    usable: List[Device] = [d for d in devices if is_usable(d)]
    if usable:
        matched = match_name_pattern(usable, name_patterns)
        if matched is not None:
            logger.debug("Selected device %s by name pattern", matched.name)
            return matched
        logger.debug("Selected first usable device %s", usable[0].name)
        return usable[0]

    logger.info("No device reports a usable status; trying %s anyway", devices[0].name)
    return devices[0]


__all__ = [
    "READY_STATUSES",
    "STATUS_USABILITY",
    "USABLE_STATUSES",
    "is_ready",
    "is_usable",
    "match_name_pattern",
    "select_device",
]
