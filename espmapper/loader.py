# SPDX-FileCopyrightText: 2025 Espressif Systems (Shanghai) CO LTD,
# other contributors as noted.
#
# SPDX-License-Identifier: GPL-2.0-or-later
"""
Load pipeline: probe the input, validate the partition choice, parse the
selected app image, map its segments and import the peripheral maps.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

from .address_space import AddressSet, AddressSpace
from .bin_image import ESP_IMAGE_MAGIC, parse_app_image
from .config import LoadConfig
from .logger import log
from .mapper import CODE_SET_NAME, map_segments
from .model import AppImage, FlashImage, PeripheralMap
from .partitions import has_bootloader, parse_flash_image
from .svd import import_peripherals, parse_svd, select_svd_file
from .util import ConflictWarning, FormatError, ValidationError

PARTITION_NOT_FOUND = "App partition not found in image."


class InputKind(enum.Enum):
    FLASH = "flash"
    APP = "app"


@dataclass
class LoadSpec:
    """What probe() found, the input is only parsed once"""

    kind: InputKind
    config: LoadConfig
    flash: FlashImage | None = None
    app: AppImage | None = None


@dataclass
class LoadResult:
    image: AppImage
    space: AddressSpace
    code_set: AddressSet
    warnings: list[ConflictWarning] = field(default_factory=list)
    peripherals: list[PeripheralMap] = field(default_factory=list)
    errors: list[FormatError] = field(default_factory=list)


def _try_parse(what, parse, *args):
    try:
        return parse(*args)
    except FormatError as e:
        log.debug(f"Not a {what}: {e}")
        return None


def probe(data, config=None):
    """
    Return a LoadSpec if the data is a flash dump or a standalone app image,
    None otherwise. Parse errors only mean the input is not supported.
    """
    config = config or LoadConfig()
    if has_bootloader(data, config.bootloader_offset):
        flash = _try_parse(
            "flash dump",
            parse_flash_image,
            data,
            config.partition_table_offset,
            config.bootloader_offset,
        )
        if flash is not None:
            return LoadSpec(InputKind.FLASH, config, flash=flash)
    if data[:1] == bytes([ESP_IMAGE_MAGIC]):
        app = _try_parse("app image", parse_app_image, data)
        if app is not None:
            return LoadSpec(InputKind.APP, config, app=app)
    return None


def default_partition(spec):
    """Partition offered by default: the configured one if present, else the
    first app partition"""
    if spec.kind != InputKind.FLASH:
        return None
    configured = spec.config.default_partition
    if configured and spec.flash.get_partition(configured) is not None:
        return configured
    apps = spec.flash.app_partitions()
    return apps[0].label if apps else None


def validate_options(spec, partition):
    """None if the partition choice is usable, else the message for the user"""
    if spec.kind != InputKind.FLASH:
        return None
    if not partition:
        return PARTITION_NOT_FOUND
    selected = spec.flash.get_partition(partition)
    if selected is None or not selected.is_app:
        return PARTITION_NOT_FOUND
    return None


def load(spec, partition=None, svd_files=(), space=None, monitor=None):
    """
    Run a load into an address space (a new in-memory one by default).

    Raises ValidationError before touching the address space when the
    partition choice is not usable, FormatError when the selected app image
    cannot be parsed. Conflicts found while mapping are returned as warnings,
    an SVD file that cannot be parsed is added to the errors and the mapped
    segments are kept.
    """
    message = validate_options(spec, partition)
    if message is not None:
        raise ValidationError(message)

    if spec.kind == InputKind.FLASH:
        selected = spec.flash.get_partition(partition)
        log.print(
            f"Loading app partition '{selected.label}' "
            f"at {selected.offset:#x} ({selected.size:#x} bytes)..."
        )
        image = selected.parse_app_image()
    else:
        image = spec.app

    if space is None:
        space = AddressSpace()
    code_set = space.get_address_set(CODE_SET_NAME)
    result = LoadResult(image, space, code_set)

    log.stage()
    log.print(f"Mapping {len(image.segments)} segments...")
    result.warnings += map_segments(space, image, code_set, monitor)
    log.stage(finish=True)
    log.print(
        f"Mapped {len(image.segments)} segments, "
        f"entry point {image.entrypoint:#010x}."
    )

    svd_path = select_svd_file(svd_files, image.variant)
    if svd_path is None:
        return result
    try:
        result.peripherals, result.errors = parse_svd(svd_path)
    except FormatError as e:
        log.warning(f"Peripherals not imported: {e}")
        result.errors.append(e)
        return result
    log.stage()
    log.print(f"Importing {len(result.peripherals)} peripherals from {svd_path}...")
    result.warnings += import_peripherals(space, result.peripherals, monitor)
    log.stage(finish=True)
    log.print(f"Imported {len(result.peripherals)} peripherals from {svd_path}.")
    return result
