# SPDX-FileCopyrightText: 2025 Espressif Systems (Shanghai) CO LTD,
# other contributors as noted.
#
# SPDX-License-Identifier: GPL-2.0-or-later
"""
In-memory target for the mapping steps: memory regions, an address set
collection, entry points, record types, a data listing and labels.

The mappers only call the methods defined here, any analysis host can be
adapted by providing an object with the same methods.
"""

from __future__ import annotations

import bisect
from dataclasses import dataclass, field

from .util import FatalError


class MemoryConflictError(FatalError):
    """A new region would overlap an existing one."""


class DataTypeConflictError(FatalError):
    """A record type with the same name exists and replacing was not allowed."""


@dataclass
class MemoryRegion:
    name: str
    start: int
    size: int
    read: bool = True
    write: bool = False
    execute: bool = False
    volatile: bool = False
    data: bytearray | None = None
    source_name: str = ""
    comment: str = ""

    @property
    def end(self) -> int:
        return self.start + self.size

    @property
    def initialized(self) -> bool:
        return self.data is not None

    @property
    def permissions(self) -> str:
        return "".join(
            flag if enabled else "-"
            for flag, enabled in (
                ("r", self.read),
                ("w", self.write),
                ("x", self.execute),
            )
        )

    def contains(self, addr: int) -> bool:
        return self.start <= addr < self.end


class AddressSet:
    """Sorted set of non-overlapping [start, end) ranges, adjacent ranges merge"""

    def __init__(self, ranges=()):
        self._ranges: list[list[int]] = []
        for start, end in ranges:
            self.add(start, end)

    def add(self, start: int, end: int) -> None:
        if end <= start:
            return
        merged = [start, end]
        kept = []
        for r in self._ranges:
            if r[1] < merged[0] or r[0] > merged[1]:
                kept.append(r)
            else:
                merged = [min(r[0], merged[0]), max(r[1], merged[1])]
        bisect.insort(kept, merged)
        self._ranges = kept

    def contains(self, addr: int) -> bool:
        return any(start <= addr < end for start, end in self._ranges)

    @property
    def num_addresses(self) -> int:
        return sum(end - start for start, end in self._ranges)

    def __iter__(self):
        return iter([tuple(r) for r in self._ranges])

    def __len__(self):
        return len(self._ranges)

    def __eq__(self, other):
        return isinstance(other, AddressSet) and list(self) == list(other)

    def __repr__(self):
        return "AddressSet(%s)" % ", ".join(
            "[%#x, %#x)" % (start, end) for start, end in self._ranges
        )


@dataclass
class Field:
    name: str
    offset: int
    size: int = 4
    type_name: str = "uint32"
    comment: str = ""


class StructType:
    """Fixed-size record type, components addressed by byte offset"""

    def __init__(self, name: str, size: int):
        self.name = name
        self.size = size
        self._fields: dict[int, Field] = {}

    def replace_at_offset(self, offset, name, size=4, type_name="uint32", comment=""):
        """
        Place a field at an offset, dropping any field it overlaps.
        Returns the dropped fields. Raises ValueError if the field does not fit
        in the record.
        """
        if offset < 0 or offset + size > self.size:
            raise ValueError(
                f"Field {name} at offset {offset:#x} (size {size}) does not fit "
                f"in {self.name} ({self.size:#x} bytes)"
            )
        dropped = []
        for other in list(self._fields.values()):
            if offset < other.offset + other.size and other.offset < offset + size:
                dropped.append(self._fields.pop(other.offset))
        self._fields[offset] = Field(name, offset, size, type_name, comment)
        return dropped

    @property
    def fields(self) -> list[Field]:
        return [self._fields[offset] for offset in sorted(self._fields)]

    def field_at(self, offset: int) -> Field | None:
        return self._fields.get(offset)

    def __len__(self):
        return self.size

    def __repr__(self):
        return f"StructType({self.name!r}, {self.size:#x}, {len(self._fields)} fields)"


@dataclass
class Namespace:
    name: str
    labels: dict[int, list[str]] = field(default_factory=dict)


@dataclass
class Label:
    name: str
    address: int
    namespace: str | None = None


class AddressSpace:
    def __init__(self):
        self._regions: list[MemoryRegion] = []
        self._address_sets: dict[str, AddressSet] = {}
        self.entry_points: list[int] = []
        self.data_types: dict[str, StructType] = {}
        self.listing: dict[int, StructType] = {}
        self.namespaces: dict[str, Namespace] = {}
        self.labels: list[Label] = []

    # Memory regions

    @property
    def regions(self) -> list[MemoryRegion]:
        return list(self._regions)

    def get_region(self, addr: int) -> MemoryRegion | None:
        """Region containing the address, if any"""
        for region in self._regions:
            if region.contains(addr):
                return region
        return None

    def get_region_by_name(self, name: str) -> MemoryRegion | None:
        for region in self._regions:
            if region.name == name:
                return region
        return None

    def intersecting(self, start: int, end: int) -> list[MemoryRegion]:
        return [r for r in self._regions if r.start < end and start < r.end]

    def contains_range(self, start: int, end: int) -> bool:
        """True if every address of [start, end) is inside some region"""
        addr = start
        while addr < end:
            region = self.get_region(addr)
            if region is None:
                return False
            addr = region.end
        return True

    def _add_region(self, region: MemoryRegion) -> MemoryRegion:
        if region.size <= 0:
            raise MemoryConflictError(f"Region {region.name} has no size.")
        clash = self.intersecting(region.start, region.end)
        if clash:
            raise MemoryConflictError(
                f"Region {region.name} [{region.start:#x}, {region.end:#x}) overlaps "
                f"existing region {clash[0].name} "
                f"[{clash[0].start:#x}, {clash[0].end:#x})."
            )
        starts = [r.start for r in self._regions]
        self._regions.insert(bisect.bisect(starts, region.start), region)
        return region

    def create_initialized_region(
        self, name, start, data, read=True, write=False, execute=False, source_name=""
    ) -> MemoryRegion:
        return self._add_region(
            MemoryRegion(
                name,
                start,
                len(data),
                read,
                write,
                execute,
                data=bytearray(data),
                source_name=source_name,
            )
        )

    def create_uninitialized_region(
        self,
        name,
        start,
        size,
        read=True,
        write=False,
        execute=False,
        volatile=False,
        source_name="",
    ) -> MemoryRegion:
        return self._add_region(
            MemoryRegion(
                name,
                start,
                size,
                read,
                write,
                execute,
                volatile,
                source_name=source_name,
            )
        )

    def convert_to_initialized(self, region: MemoryRegion, fill: int = 0) -> None:
        if region.data is None:
            region.data = bytearray([fill]) * region.size

    def put_bytes(self, addr: int, data: bytes) -> None:
        region = self.get_region(addr)
        if region is None or addr + len(data) > region.end:
            raise MemoryConflictError(
                f"Cannot write {len(data):#x} bytes at {addr:#x}: "
                "not inside a single region."
            )
        if not region.initialized:
            raise MemoryConflictError(
                f"Cannot write to uninitialized region {region.name}."
            )
        offset = addr - region.start
        region.data[offset : offset + len(data)] = data

    def read_bytes(self, addr: int, size: int) -> bytes:
        region = self.get_region(addr)
        if region is None or not region.initialized or addr + size > region.end:
            raise MemoryConflictError(f"Cannot read {size:#x} bytes at {addr:#x}.")
        offset = addr - region.start
        return bytes(region.data[offset : offset + size])

    # Address sets, entry points

    def get_address_set(self, name: str, create: bool = True) -> AddressSet | None:
        if name not in self._address_sets and create:
            self._address_sets[name] = AddressSet()
        return self._address_sets.get(name)

    def add_entry_point(self, addr: int) -> None:
        if addr not in self.entry_points:
            self.entry_points.append(addr)

    # Types, listing and symbols

    def add_data_type(self, struct: StructType, replace: bool = True) -> StructType:
        existing = self.data_types.get(struct.name)
        if existing is not None and not replace:
            raise DataTypeConflictError(f"Data type {struct.name} already exists.")
        self.data_types[struct.name] = struct
        # instances of a replaced type follow the new definition
        for addr, dtype in self.listing.items():
            if existing is not None and dtype is existing:
                self.listing[addr] = struct
        return struct

    def create_data(self, addr: int, struct: StructType) -> None:
        """Place a record at an address, clearing records it overlaps"""
        end = addr + struct.size
        for other_addr, other in list(self.listing.items()):
            if other_addr < end and addr < other_addr + other.size:
                del self.listing[other_addr]
        self.listing[addr] = struct

    def get_namespace(self, name: str) -> Namespace | None:
        return self.namespaces.get(name)

    def create_namespace(self, name: str) -> Namespace:
        if name in self.namespaces:
            raise FatalError(f"Namespace {name} already exists.")
        self.namespaces[name] = Namespace(name)
        return self.namespaces[name]

    def create_label(self, addr: int, name: str, namespace: Namespace | None = None):
        ns_name = namespace.name if namespace is not None else None
        for label in self.labels:
            if (label.address, label.name, label.namespace) == (addr, name, ns_name):
                return label
        label = Label(name, addr, ns_name)
        self.labels.append(label)
        if namespace is not None:
            namespace.labels.setdefault(addr, []).append(name)
        return label

    def get_labels(self, addr: int) -> list[Label]:
        return [label for label in self.labels if label.address == addr]
