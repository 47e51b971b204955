# SPDX-FileCopyrightText: 2025 Espressif Systems (Shanghai) CO LTD,
# other contributors as noted.
#
# SPDX-License-Identifier: GPL-2.0-or-later

import hashlib
import struct

from .bin_image import ESP_IMAGE_MAGIC, parse_app_image
from .logger import log
from .model import FlashImage, Partition
from .util import FormatError, RangeError, sanitize_string

DEFAULT_BOOTLOADER_OFFSET = 0x1000
DEFAULT_PARTITION_TABLE_OFFSET = 0x8000

# Table size limit, the rest of the sector is unused
MAX_PARTITION_TABLE_LENGTH = 0xC00

ENTRY_FMT = "<2sBBII16sI"
ENTRY_LEN = struct.calcsize(ENTRY_FMT)  # 32 bytes

PARTITION_MAGIC = b"\xaa\x50"
MD5_MAGIC = b"\xeb\xeb" + b"\xff" * 14
END_MARKER = b"\xff" * ENTRY_LEN


def has_bootloader(data, bootloader_offset=DEFAULT_BOOTLOADER_OFFSET):
    return len(data) > bootloader_offset and data[bootloader_offset] == ESP_IMAGE_MAGIC


def parse_flash_image(
    data,
    table_offset=DEFAULT_PARTITION_TABLE_OFFSET,
    bootloader_offset=DEFAULT_BOOTLOADER_OFFSET,
):
    """
    Parse a full flash dump: check the 2nd stage bootloader magic and read the
    partition table.

    Partitions are returned in table order. Each one keeps a reference to the
    dump so it can parse the app image in its own byte range.
    """
    data = bytes(data)
    if not has_bootloader(data, bootloader_offset):
        raise FormatError(
            f"No bootloader image at {bootloader_offset:#x}, not a flash dump."
        )

    flash = FlashImage()
    table_end = min(len(data), table_offset + MAX_PARTITION_TABLE_LENGTH)
    for entry_offs in range(table_offset, table_end - ENTRY_LEN + 1, ENTRY_LEN):
        raw = data[entry_offs : entry_offs + ENTRY_LEN]
        if raw == END_MARKER:
            break
        if raw.startswith(MD5_MAGIC):
            stored_md5 = raw[len(MD5_MAGIC) :]
            calc_md5 = hashlib.md5(data[table_offset:entry_offs]).digest()
            flash.md5_valid = stored_md5 == calc_md5
            if not flash.md5_valid:
                log.warning(
                    "Partition table MD5 does not match "
                    f"(stored {stored_md5.hex()}, calculated {calc_md5.hex()})."
                )
            break

        magic, ptype, subtype, offset, size, label, flags = struct.unpack(
            ENTRY_FMT, raw
        )
        if magic != PARTITION_MAGIC:
            raise FormatError(
                f"Invalid partition table entry at {entry_offs:#x} "
                f"(magic {magic.hex()})."
            )
        partition = Partition(
            type=ptype,
            subtype=subtype,
            offset=offset,
            size=size,
            label=sanitize_string(label),
            flags=flags,
            source=data,
        )
        _check_partition(partition, flash.partitions, len(data))
        flash.partitions.append(partition)

    if not flash.partitions:
        raise FormatError(f"No partition table found at {table_offset:#x}.")

    try:
        flash.bootloader = parse_app_image(data[bootloader_offset:table_offset])
    except FormatError as e:
        log.warning(f"Cannot parse the bootloader image: {e}")
    return flash


def _check_partition(partition, previous, data_len):
    if partition.size == 0:
        raise FormatError(f"Partition '{partition.label}' has zero length.")
    if partition.end > data_len:
        raise RangeError(
            f"partition '{partition.label}'",
            partition.offset,
            partition.size,
            data_len - partition.offset,
        )
    for other in previous:
        if partition.offset < other.end and other.offset < partition.end:
            raise FormatError(
                f"Partition '{partition.label}' at {partition.offset:#x} overlaps "
                f"partition '{other.label}' at {other.offset:#x}."
            )


def save_partition_table(partitions, with_md5=True):
    """
    Encode partitions into a partition table blob, terminated the way
    ESP-IDF does it (optional MD5 entry, then 0xFF fill up to the size limit).
    """
    table = b"".join(
        struct.pack(
            ENTRY_FMT,
            PARTITION_MAGIC,
            p.type,
            p.subtype,
            p.offset,
            p.size,
            p.label.encode("utf-8")[:16],
            p.flags,
        )
        for p in partitions
    )
    if with_md5:
        table += MD5_MAGIC + hashlib.md5(table).digest()
    if len(table) > MAX_PARTITION_TABLE_LENGTH:
        raise FormatError("Partition table too long.")
    return table + b"\xff" * (MAX_PARTITION_TABLE_LENGTH - len(table))
