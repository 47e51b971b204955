# SPDX-FileCopyrightText: 2014-2025 Fredrik Ahlberg, Angus Gratton,
# Espressif Systems (Shanghai) CO LTD, other contributors as noted.
#
# SPDX-License-Identifier: GPL-2.0-or-later

import json

import yaml

from .bin_image import WP_PIN_DISABLED
from .config import LoadConfig
from .loader import InputKind, default_partition, load, probe, validate_options
from .logger import log
from .svd import parse_svd
from .targets import target_for_chip_id
from .util import FatalError, ImageSource, ValidationError, get_bytes, hexify

OUTPUT_FORMATS = ["text", "yaml", "json"]


def _title(title: str) -> None:
    log.print(title)
    log.print("=" * len(title))


def _probe_input(input: ImageSource, config: LoadConfig | None):
    data, source = get_bytes(input)
    if not data:
        raise FatalError("Image is empty.")
    spec = probe(data, config or LoadConfig.from_config_file())
    if spec is None:
        raise FatalError(
            f"{source or 'Input'} is neither a flash dump nor an app image."
        )
    return spec


def _select_partition(spec, partition):
    if partition is None:
        partition = default_partition(spec)
    message = validate_options(spec, partition)
    if message is not None:
        raise ValidationError(message)
    return partition


def partition_table(input: ImageSource, config: LoadConfig | None = None) -> None:
    """
    Print the partition table of a flash dump.

    Args:
        input: Path to the flash dump, opened file-like object, or the dump
            data as bytes.
        config: Offsets to use, read from the config file if not provided.
    """
    spec = _probe_input(input, config)
    if spec.kind != InputKind.FLASH:
        raise FatalError("This is an app image, it has no partition table.")
    flash = spec.flash

    _title("Partition Table")
    headers_str = "{:16}  {:>4}  {:>8}  {:>10}  {:>10}  {}"
    log.print(headers_str.format("Label", "Type", "Subtype", "Offset", "Size", "Flags"))
    log.print(f"{'-' * 16}  {'-' * 4}  {'-' * 8}  {'-' * 10}  {'-' * 10}  {'-' * 5}")
    for p in flash.partitions:
        log.print(
            headers_str.format(
                p.label,
                p.type_name,
                p.subtype_name,
                f"{p.offset:#x}",
                f"{p.size:#x}",
                ", ".join(p.flag_names),
            )
        )
    log.print()
    if flash.md5_valid is None:
        log.print("MD5: Not appended")
    else:
        log.print(f"MD5: {'valid' if flash.md5_valid else 'invalid'}")


def image_info(
    input: ImageSource, partition: str | None = None, config: LoadConfig | None = None
) -> None:
    """
    Display detailed information about an app image, either standalone or
    stored in an app partition of a flash dump.

    Args:
        input: Path to the image file, opened file-like object, or the image
            data as bytes.
        partition: App partition to inspect when the input is a flash dump.
            The first app partition is used if not set.
        config: Offsets to use, read from the config file if not provided.
    """
    spec = _probe_input(input, config)
    if spec.kind == InputKind.FLASH:
        partition = _select_partition(spec, partition)
        selected = spec.flash.get_partition(partition)
        log.print(f"Flash dump, app partition '{partition}' at {selected.offset:#x}")
        image = selected.parse_app_image()
    else:
        image = spec.app

    target = target_for_chip_id(image.chip_id)
    chip = target.CHIP_NAME if target is not None else "Unknown ID"

    log.print()
    _title("Image Header")
    log.print(
        f"Entry point: {image.entrypoint:#8x}"
        if image.entrypoint != 0
        else "Entry point not set"
    )
    log.print(f"Segments: {len(image.segments)}")
    log.print(f"Flash mode: {image.flash_mode}")
    log.print(f"Flash size/freq: {image.flash_size_freq:#04x}")
    log.print(
        f"WP pin: {image.wp_pin:#02x}",
        *["(disabled)"] if image.wp_pin == WP_PIN_DISABLED else [],
    )
    log.print(f"Chip ID: {image.chip_id} ({chip})")
    log.print(
        "Minimal chip revision: "
        f"v{image.min_rev_full // 100}.{image.min_rev_full % 100}, "
        f"(legacy min_rev = {image.min_rev})"
    )
    log.print(
        "Maximal chip revision: "
        f"v{image.max_rev_full // 100}.{image.max_rev_full % 100}"
    )
    log.print()

    _title("Segments Information")
    headers_str = "{:>7}  {:>7}  {:>10}  {:>10}  {:11}  {}"
    log.print(
        headers_str.format(
            "Segment", "Length", "Load addr", "File offs", "Memory type", "Perms"
        )
    )
    log.print(f"{'-' * 7}  {'-' * 7}  {'-' * 10}  {'-' * 10}  {'-' * 11}  {'-' * 5}")
    format_str = "{:7}  {:#07x}  {:#010x}  {:#010x}  {:11}  {}"
    for idx, seg in enumerate(image.segments):
        perms = "".join(
            flag if enabled else "-"
            for flag, enabled in (("r", seg.read), ("w", seg.write), ("x", seg.execute))
        )
        log.print(
            format_str.format(
                idx, seg.length, seg.addr, seg.file_offs or 0, seg.kind.name, perms
            )
        )
    log.print()

    _title("Image Footer")
    if image.checksum is None:
        log.print("Checksum: Not present")
    else:
        log.print(
            "Checksum: {:#04x} ({})".format(
                image.checksum,
                (
                    "valid"
                    if image.checksum == image.calc_checksum
                    else f"invalid - calculated {image.calc_checksum:#04x}"
                ),
            )
        )
    if not image.append_digest:
        log.print("Validation hash: Not appended")
    elif image.stored_digest is not None:
        is_valid = image.stored_digest == image.calc_digest
        log.print(
            "Validation hash: {} ({})".format(
                hexify(image.calc_digest, uppercase=False),
                "valid" if is_valid else "invalid",
            )
        )

    if image.app_desc:
        app_desc = image.app_desc
        log.print()
        _title("Application Information")
        log.print(f"Project name: {app_desc['project_name']}")
        log.print(f"App version: {app_desc['version']}")
        log.print(f"Compile time: {app_desc['date']} {app_desc['time']}")
        log.print(f"ELF file SHA256: {app_desc['app_elf_sha256']}")
        log.print(f"ESP-IDF: {app_desc['idf_ver']}")
        log.print(f"Secure version: {app_desc['secure_version']}")


def load_report(result) -> dict:
    """Plain data view of a load, used for the yaml and json output"""
    space = result.space
    return {
        "chip": result.image.variant.value,
        "entry_point": result.image.entrypoint,
        "regions": [
            {
                "name": r.name,
                "start": r.start,
                "size": r.size,
                "permissions": r.permissions,
                "initialized": r.initialized,
                "source": r.source_name,
            }
            for r in space.regions
        ],
        "code": [{"start": start, "end": end} for start, end in result.code_set],
        "peripherals": [
            {
                "name": p.name,
                "base_address": p.base_address,
                "size": p.size,
                "registers": len(space.data_types[p.name].fields),
            }
            for p in result.peripherals
        ],
        "warnings": [str(w) for w in result.warnings],
        "errors": [str(e) for e in result.errors],
    }


def _print_load_report(result) -> None:
    log.print()
    _title("Memory Map")
    format_str = "{:24}  {:>10}  {:>10}  {:5}  {}"
    log.print(format_str.format("Name", "Start", "Size", "Perms", "Source"))
    log.print(f"{'-' * 24}  {'-' * 10}  {'-' * 10}  {'-' * 5}  {'-' * 9}")
    for r in result.space.regions:
        log.print(
            format_str.format(
                r.name, f"{r.start:#010x}", f"{r.size:#x}", r.permissions, r.source_name
            )
        )
    log.print()
    _title("Code Ranges")
    for start, end in result.code_set:
        log.print(f"{start:#010x} - {end:#010x}")
    log.print(f"Entry point: {result.image.entrypoint:#010x}")
    if result.peripherals:
        log.print()
        log.print(f"Peripherals: {len(result.peripherals)} imported")
    if result.errors:
        log.print()
        log.print(f"{len(result.errors)} SVD error(s) reported, see warnings above.")
    if result.warnings:
        log.print()
        log.print(f"{len(result.warnings)} conflict(s) reported, see warnings above.")


def load_image(
    input: ImageSource,
    partition: str | None = None,
    svd_files=(),
    output_format: str = "text",
    output: str | None = None,
    config: LoadConfig | None = None,
    space=None,
    monitor=None,
):
    """
    Load a flash dump or app image into an address space and report the
    resulting memory map.

    Args:
        input: Path to the image file, opened file-like object, or the image
            data as bytes.
        partition: App partition to load when the input is a flash dump.
        svd_files: Candidate SVD files, the one matching the chip is used.
        output_format: ``"text"``, ``"yaml"`` or ``"json"``.
        output: File to write the yaml or json report to, printed if not set.
        space: Address space to load into, a new in-memory one if not set.
        monitor: TaskMonitor for cancellation and progress.

    Returns:
        The LoadResult.
    """
    if output_format not in OUTPUT_FORMATS:
        raise FatalError(f"Unknown output format '{output_format}'.")
    config = config or LoadConfig.from_config_file()
    spec = _probe_input(input, config)
    if spec.kind == InputKind.FLASH:
        partition = _select_partition(spec, partition)
    if not svd_files:
        svd_files = config.svd_files()

    result = load(spec, partition, svd_files, space, monitor)

    if output_format == "text":
        _print_load_report(result)
        return result

    report = load_report(result)
    if output_format == "yaml":
        text = yaml.safe_dump(report, sort_keys=False)
    else:
        text = json.dumps(report, indent=2)
    if output is None:
        # the report is the command output, printed in silent mode too
        print(text)
    else:
        with open(output, "w") as f:
            f.write(text)
        log.print(f"Report written to {output}")
    return result


def peripherals(svd_path: str) -> None:
    """
    List the peripherals described in an SVD file.

    Args:
        svd_path: Path to the SVD file.
    """
    maps, errors = parse_svd(svd_path)
    _title("Peripherals")
    format_str = "{:20}  {:>10}  {:>8}  {:>9}  {}"
    log.print(format_str.format("Name", "Base", "Size", "Registers", "Derived from"))
    log.print(f"{'-' * 20}  {'-' * 10}  {'-' * 8}  {'-' * 9}  {'-' * 12}")
    for p in maps:
        log.print(
            format_str.format(
                p.name,
                f"{p.base_address:#010x}",
                f"{p.size:#x}",
                len(p.registers),
                p.derived_from or "",
            )
        )
    if errors:
        log.print()
        log.warning(f"{len(errors)} peripheral(s) skipped.")


def version() -> None:
    """
    Print the current espmapper version.
    """
    from . import __version__

    log.print(__version__)
