# SPDX-FileCopyrightText: 2014-2024 Fredrik Ahlberg, Angus Gratton,
# Espressif Systems (Shanghai) CO LTD, other contributors as noted.
#
# SPDX-License-Identifier: GPL-2.0-or-later

from .esp32 import ESP32Target
from ..model import ChipVariant, RegionKind


class ESP32S2Target(ESP32Target):
    CHIP_NAME = "ESP32-S2"
    IMAGE_CHIP_ID = 2
    VARIANT = ChipVariant.ESP32S2

    SVD_MARKER = "esp32s2"

    MEMORY_MAP = [
        [0x00000000, 0x00010000, RegionKind.PADDING],
        [0x3F000000, 0x3F3F0000, RegionKind.DROM0],
        [0x3F500000, 0x3FF80000, RegionKind.EXTRAM_DATA],
        [0x3FF9E000, 0x3FFA0000, RegionKind.RTC_DRAM],
        [0x3FFB0000, 0x40000000, RegionKind.DRAM],
        [0x40020000, 0x40070000, RegionKind.IRAM],
        [0x40070000, 0x40072000, RegionKind.RTC_IRAM],
        [0x40080000, 0x40B80000, RegionKind.IROM0],
        [0x50000000, 0x50002000, RegionKind.RTC_DATA],
    ]
