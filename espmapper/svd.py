# SPDX-FileCopyrightText: 2025 Espressif Systems (Shanghai) CO LTD,
# other contributors as noted.
#
# SPDX-License-Identifier: GPL-2.0-or-later
"""
Peripheral register maps from CMSIS-SVD chip descriptors.

The descriptor is parsed once into PeripheralMap values, everything applied
to the address space afterwards works on those.
"""

from cmsis_svd.parser import SVDParser

from .address_space import StructType
from .logger import log
from .model import PeripheralMap, Register
from .targets import TARGET_LIST, target_for_variant
from .util import ConflictWarning, FormatError, short_name

PERIPHERALS_NAMESPACE = "Peripherals"

REGISTER_SIZE = 4
REGISTER_TYPE = "uint32"

SOURCE_SVD = "svd"


def _file_marker(path):
    """Most specific chip marker contained in the file name, if any"""
    name = short_name(path)
    markers = sorted((t.SVD_MARKER for t in TARGET_LIST), key=len, reverse=True)
    for marker in markers:
        if marker in name:
            return marker
    return None


def select_svd_file(paths, variant):
    """
    Pick the descriptor for a chip variant: the first file whose name carries
    the variant's marker, otherwise the first file.
    """
    paths = list(paths)
    if not paths:
        return None
    wanted = target_for_variant(variant).SVD_MARKER
    for path in paths:
        if _file_marker(path) == wanted:
            return path
    log.note(
        f"No SVD file for {target_for_variant(variant).CHIP_NAME} found, "
        f"using {paths[0]}."
    )
    return paths[0]


def _address_block_size(peripheral):
    # cmsis-svd >= 1.0 keeps a list of blocks, older releases a single one
    blocks = getattr(peripheral, "address_blocks", None)
    if blocks:
        return blocks[0].size
    block = getattr(peripheral, "address_block", None)
    if block is not None:
        return block.size
    return None


def _to_peripheral_map(peripheral, by_name):
    name = peripheral.name
    if not name:
        raise FormatError("Peripheral without name.")

    derived_from = getattr(peripheral, "derived_from", None)
    base = by_name.get(derived_from) if derived_from else None
    base_address = peripheral.base_address
    if base_address is None:
        raise FormatError(f"Peripheral {name} has no baseAddress.")

    size = _address_block_size(peripheral)
    if size is None and base is not None:
        size = _address_block_size(base)
    if not size:
        raise FormatError(f"Peripheral {name} has no addressBlock size.")

    svd_registers = peripheral.registers or []
    if not svd_registers and base is not None:
        svd_registers = base.registers or []
    registers = []
    for reg in svd_registers:
        if reg.name is None or reg.address_offset is None:
            raise FormatError(f"Register without name or addressOffset in {name}.")
        description = getattr(reg, "description", None) or ""
        registers.append(Register(reg.name, reg.address_offset, description))

    return PeripheralMap(
        name=name,
        base_address=base_address,
        size=size,
        registers=registers,
        description=(getattr(peripheral, "description", None) or "").strip(),
        derived_from=derived_from,
    )


def to_peripheral_maps(svd_peripherals):
    """Convert cmsis-svd peripherals, collecting a FormatError per bad one"""
    svd_peripherals = list(svd_peripherals)
    by_name = {p.name: p for p in svd_peripherals if p.name}
    peripherals, errors = [], []
    for peripheral in svd_peripherals:
        try:
            peripherals.append(_to_peripheral_map(peripheral, by_name))
        except FormatError as e:
            log.warning(f"Skipping peripheral: {e}")
            errors.append(e)
    return peripherals, errors


def parse_svd(path):
    """
    Parse an SVD file into PeripheralMap values.

    Returns (peripherals, errors): a peripheral missing a required field
    is left out and its FormatError added to errors. A document that cannot
    be parsed at all raises FormatError.
    """
    try:
        device = SVDParser.for_xml_file(str(path)).get_device()
    except (OSError, SyntaxError, ValueError, TypeError, AttributeError) as e:
        raise FormatError(f"Cannot parse SVD file {path}: {e}") from e

    peripherals, errors = to_peripheral_maps(device.peripherals or [])
    log.debug(f"{len(peripherals)} peripherals parsed from {path}")
    return peripherals, errors


def _conflict(warnings, message, addr):
    log.warning(message)
    if warnings is not None:
        warnings.append(ConflictWarning(message, addr))


def build_record_type(peripheral, warnings=None):
    """
    Record type spanning the peripheral address block, one 4 byte unsigned
    field per register. A register declared at an offset already used
    replaces the earlier one, each replacement is reported as a conflict.
    """
    struct = StructType(peripheral.name, peripheral.size)
    for reg in peripheral.registers:
        addr = peripheral.base_address + reg.offset
        try:
            dropped = struct.replace_at_offset(
                reg.offset, reg.name, REGISTER_SIZE, REGISTER_TYPE, reg.description
            )
        except ValueError as e:
            _conflict(
                warnings,
                f"Register {reg.name} left out of {peripheral.name}: {e}",
                addr,
            )
            continue
        for field in dropped:
            _conflict(
                warnings,
                f"Register {reg.name} replaces {field.name} at offset "
                f"{field.offset:#x} in {peripheral.name}.",
                addr,
            )
    return struct


def import_peripherals(space, peripherals, monitor=None):
    """
    Apply peripheral maps to the address space: an uninitialized RW region,
    the record type (replacing a type of the same name), a record instance at
    the base address and a label in the Peripherals namespace.

    Returns the list of ConflictWarning found.
    """
    warnings = []
    namespace = space.get_namespace(PERIPHERALS_NAMESPACE)
    if namespace is None:
        namespace = space.create_namespace(PERIPHERALS_NAMESPACE)

    total = len(peripherals)
    for i, peripheral in enumerate(peripherals):
        if monitor is not None:
            monitor.check_cancelled()
            monitor.progress(i, total, "Importing peripherals: ")

        existing = space.get_region(peripheral.base_address)
        clash = space.intersecting(peripheral.base_address, peripheral.end)
        if existing is not None and existing.name == peripheral.name:
            log.debug(f"Region {peripheral.name} already present")
        elif clash:
            _conflict(
                warnings,
                f"Peripheral {peripheral.name} at {peripheral.base_address:#x} "
                f"overlaps region {clash[0].name}, no region created.",
                peripheral.base_address,
            )
        else:
            space.create_uninitialized_region(
                peripheral.name,
                peripheral.base_address,
                peripheral.size,
                read=True,
                write=True,
                volatile=True,
                source_name=SOURCE_SVD,
            )

        struct = space.add_data_type(build_record_type(peripheral, warnings))
        space.create_data(peripheral.base_address, struct)
        space.create_label(peripheral.base_address, peripheral.name, namespace)

    if monitor is not None:
        monitor.progress(total, total, "Importing peripherals: ")
    return warnings
