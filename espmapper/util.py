# SPDX-FileCopyrightText: 2014-2025 Fredrik Ahlberg, Angus Gratton,
# Espressif Systems (Shanghai) CO LTD, other contributors as noted.
#
# SPDX-License-Identifier: GPL-2.0-or-later
from __future__ import annotations
import os
import re

from typing import IO, TypeAlias

# Define a custom type for the input
ImageSource: TypeAlias = str | bytes | bytearray | IO[bytes]


def hexify(s, uppercase=True):
    format_str = "%02X" if uppercase else "%02x"
    return "".join(format_str % c for c in s)


def strip_chip_name(chip_name):
    """Strip chip name to normalized form, e.g. `ESP32-S2` -> `esp32s2`"""
    return re.sub(r"[-()_ ]", "", chip_name.lower())


def sanitize_string(byte_string):
    return byte_string.decode("utf-8", errors="replace").replace("\0", "")


def get_bytes(input: ImageSource) -> tuple[bytes, str | None]:
    """
    Normalize the input (file path, bytes, or an opened file-like object) into bytes
    and provide a name of the source.

    Args:
        input: The input file path, bytes, or an opened file-like object.

    Returns:
        A tuple containing the normalized bytes and the source of the input.
    """
    if isinstance(input, str):
        with open(input, "rb") as f:
            data = f.read()
            source = input
    elif isinstance(input, (bytes, bytearray)):
        data = bytes(input)
        source = None
    elif hasattr(input, "read"):
        pos = input.tell()
        data = input.read()
        input.seek(pos)  # Reset the file pointer
        source = getattr(input, "name", None)
    else:
        raise FatalError(f"Invalid input type {type(input)}")
    return data, source


def short_name(path: str) -> str:
    """File name without directories and extension, normalized for matching"""
    return strip_chip_name(os.path.splitext(os.path.basename(path))[0])


class TaskMonitor:
    """
    Cooperative cancellation and progress signal passed into long-running
    mapping steps. Cancellation only stops further work, mutations already
    applied to the address space are kept.
    """

    def __init__(self, progress_callback=None) -> None:
        self._cancelled = False
        self.progress_callback = progress_callback

    def cancel(self) -> None:
        self._cancelled = True

    def check_cancelled(self) -> None:
        if self._cancelled:
            raise LoadCancelled()

    def progress(self, cur_iter: int, total_iters: int, prefix: str = "") -> None:
        if self.progress_callback is not None and total_iters:
            self.progress_callback(cur_iter, total_iters, prefix)


class FatalError(RuntimeError):
    """
    Wrapper class for runtime errors that aren't caused by internal bugs, but by
    input content or invalid user choices.
    """

    def __init__(self, message):
        RuntimeError.__init__(self, message)


class FormatError(FatalError):
    """
    Malformed or unsupported input: wrong magic byte, invalid partition entry,
    missing required descriptor field.
    """


class RangeError(FormatError):
    """A declared length or offset goes past the end of the source bytes."""

    def __init__(self, what, offset, length, available):
        FormatError.__init__(
            self,
            f"End of data reading {what} at {offset:#x}, "
            f"length {length:#x} (only {max(available, 0):#x} bytes available)",
        )
        self.offset = offset
        self.length = length


class ValidationError(FatalError):
    """Load options are not usable for this input, nothing has been loaded."""


class LoadCancelled(FatalError):
    def __init__(self):
        FatalError.__init__(self, "Load cancelled, already mapped content was kept.")


class ConflictWarning(UserWarning):
    """
    Non-fatal problem found while applying content to the address space.
    Collected and reported, never raised.
    """

    def __init__(self, message, address=None):
        UserWarning.__init__(self, message)
        self.message = message
        self.address = address

    def __str__(self):
        return self.message
