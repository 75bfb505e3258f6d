"""
Failure taxonomy for print jobs.

Every failure is recovered at the job boundary and reported as a JobResult
carrying one of these kinds; the exceptions only travel inside the dispatcher
and the device registry.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    NO_DEVICE_FOUND = "NoDeviceFound"
    DEVICE_QUERY_ERROR = "DeviceQueryError"
    LOAD_FAILURE = "LoadFailure"
    PRINT_FAILURE = "PrintFailure"
    TIMEOUT = "Timeout"


class PrintError(Exception):
    """Base class for recoverable print failures."""

    kind: ErrorKind = ErrorKind.PRINT_FAILURE


class NoDeviceFound(PrintError):
    kind = ErrorKind.NO_DEVICE_FOUND


class DeviceQueryError(PrintError):
    """The platform device enumeration could not complete."""

    kind = ErrorKind.DEVICE_QUERY_ERROR


class LoadFailure(PrintError):
    """Ticket content could not be loaded into the rendering surface."""

    kind = ErrorKind.LOAD_FAILURE


class PrintFailure(PrintError):
    """The platform reported that the print instruction failed."""

    kind = ErrorKind.PRINT_FAILURE


class PrintTimeout(PrintError):
    kind = ErrorKind.TIMEOUT


__all__ = [
    "DeviceQueryError",
    "ErrorKind",
    "LoadFailure",
    "NoDeviceFound",
    "PrintError",
    "PrintFailure",
    "PrintTimeout",
]
