# SPDX-FileCopyrightText: 2025 Espressif Systems (Shanghai) CO LTD,
# other contributors as noted.
#
# SPDX-License-Identifier: GPL-2.0-or-later
"""Value types shared by the parsers and the mapping steps."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field


class ChipVariant(enum.Enum):
    GENERIC = "esp32"
    ESP32S2 = "esp32s2"


class RegionKind(enum.Enum):
    IROM0 = "IROM0"
    DROM0 = "DROM0"
    IRAM = "IRAM"
    DRAM = "DRAM"
    RTC_IRAM = "RTC_IRAM"
    RTC_DRAM = "RTC_DRAM"
    RTC_DATA = "RTC_DATA"
    EXTRAM_DATA = "EXTRAM_DATA"
    PADDING = "PADDING"
    UNKNOWN = "UNKNOWN"

    @property
    def is_code(self) -> bool:
        return self in CODE_KINDS

    @property
    def permissions(self) -> tuple[bool, bool, bool]:
        """(read, write, execute)"""
        if self.is_code:
            return True, False, True
        return True, True, False


CODE_KINDS = frozenset({RegionKind.IROM0, RegionKind.IRAM, RegionKind.RTC_IRAM})

# Flash-mapped kinds, always present once per image and named without address
FLASH_MAPPED_KINDS = frozenset({RegionKind.IROM0, RegionKind.DROM0})


@dataclass
class Segment:
    addr: int
    data: bytes
    kind: RegionKind = RegionKind.UNKNOWN
    file_offs: int | None = None

    @property
    def length(self) -> int:
        return len(self.data)

    @property
    def end(self) -> int:
        return self.addr + len(self.data)

    @property
    def read(self) -> bool:
        return self.kind.permissions[0]

    @property
    def write(self) -> bool:
        return self.kind.permissions[1]

    @property
    def execute(self) -> bool:
        return self.kind.permissions[2]

    @property
    def is_code(self) -> bool:
        return self.kind.is_code

    def __repr__(self):
        r = "len 0x%05x load 0x%08x %s" % (len(self.data), self.addr, self.kind.name)
        if self.file_offs is not None:
            r += " file_offs 0x%08x" % (self.file_offs)
        return r


@dataclass
class AppImage:
    entrypoint: int
    variant: ChipVariant
    segments: list[Segment] = field(default_factory=list)
    chip_id: int = 0
    flash_mode: int = 0
    flash_size_freq: int = 0
    wp_pin: int = 0xEE
    spi_drive: bytes = b"\x00\x00\x00"
    min_rev: int = 0
    min_rev_full: int = 0
    max_rev_full: int = 0
    reserved: bytes = b"\x00" * 4
    append_digest: bool = False
    checksum: int | None = None
    calc_checksum: int | None = None
    stored_digest: bytes | None = None
    calc_digest: bytes | None = None
    app_desc: dict | None = None

    @property
    def code_segments(self) -> list[Segment]:
        return [s for s in self.segments if s.is_code]


@dataclass
class Partition:
    type: int
    subtype: int
    offset: int
    size: int
    label: str
    flags: int = 0
    source: bytes = field(default=b"", repr=False, compare=False)

    APP_TYPE = 0x00
    DATA_TYPE = 0x01

    TYPES = {0x00: "app", 0x01: "data"}

    APP_SUBTYPES = {0x00: "factory", 0x20: "test"}
    APP_SUBTYPES.update({0x10 + n: f"ota_{n}" for n in range(16)})

    DATA_SUBTYPES = {
        0x00: "ota",
        0x01: "phy",
        0x02: "nvs",
        0x03: "coredump",
        0x04: "nvs_keys",
        0x05: "efuse",
        0x06: "undefined",
        0x80: "esphttpd",
        0x81: "fat",
        0x82: "spiffs",
        0x83: "littlefs",
    }

    FLAG_ENCRYPTED = 0x01
    FLAG_READONLY = 0x02

    @property
    def end(self) -> int:
        return self.offset + self.size

    @property
    def is_app(self) -> bool:
        return self.type == self.APP_TYPE

    @property
    def type_name(self) -> str:
        return self.TYPES.get(self.type, f"{self.type:#04x}")

    @property
    def subtype_name(self) -> str:
        names = {
            self.APP_TYPE: self.APP_SUBTYPES,
            self.DATA_TYPE: self.DATA_SUBTYPES,
        }.get(self.type, {})
        return names.get(self.subtype, f"{self.subtype:#04x}")

    @property
    def flag_names(self) -> list[str]:
        names = []
        if self.flags & self.FLAG_ENCRYPTED:
            names.append("encrypted")
        if self.flags & self.FLAG_READONLY:
            names.append("readonly")
        return names

    def data(self) -> bytes:
        return self.source[self.offset : self.end]

    def parse_app_image(self) -> AppImage:
        """Parse the application image stored in this partition"""
        from .bin_image import parse_app_image

        return parse_app_image(self.data())


@dataclass
class FlashImage:
    partitions: list[Partition] = field(default_factory=list)
    bootloader: AppImage | None = None
    md5_valid: bool | None = None

    def get_partition(self, name: str) -> Partition | None:
        for partition in self.partitions:
            if partition.label == name:
                return partition
        return None

    def app_partitions(self) -> list[Partition]:
        return [p for p in self.partitions if p.is_app]


@dataclass
class Register:
    name: str
    offset: int
    description: str = ""


@dataclass
class PeripheralMap:
    name: str
    base_address: int
    size: int
    registers: list[Register] = field(default_factory=list)
    description: str = ""
    derived_from: str | None = None

    @property
    def end(self) -> int:
        return self.base_address + self.size
