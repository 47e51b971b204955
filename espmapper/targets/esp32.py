# SPDX-FileCopyrightText: 2014-2025 Fredrik Ahlberg, Angus Gratton,
# Espressif Systems (Shanghai) CO LTD, other contributors as noted.
#
# SPDX-License-Identifier: GPL-2.0-or-later

from ..model import ChipVariant, RegionKind


class ESP32Target(object):
    """Memory layout of the ESP32, also used for images of unknown chips"""

    CHIP_NAME = "ESP32"
    IMAGE_CHIP_ID = 0
    VARIANT = ChipVariant.GENERIC

    # Marker searched for in SVD file names
    SVD_MARKER = "esp32"

    # [low, high) -> kind, rows must not overlap
    MEMORY_MAP = [
        [0x00000000, 0x00010000, RegionKind.PADDING],
        [0x3F400000, 0x3F800000, RegionKind.DROM0],
        [0x3F800000, 0x3FC00000, RegionKind.EXTRAM_DATA],
        [0x3FF80000, 0x3FF82000, RegionKind.RTC_DRAM],
        [0x3FFAE000, 0x40000000, RegionKind.DRAM],
        [0x40080000, 0x400C0000, RegionKind.IRAM],
        [0x400C0000, 0x400C2000, RegionKind.RTC_IRAM],
        [0x400D0000, 0x40400000, RegionKind.IROM0],
        [0x50000000, 0x50002000, RegionKind.RTC_DATA],
    ]

    @classmethod
    def classify(cls, addr):
        """Return the region kind covering the start address, first match wins"""
        for low, high, kind in cls.MEMORY_MAP:
            if low <= addr < high:
                return kind
        return RegionKind.UNKNOWN
