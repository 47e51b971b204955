# SPDX-FileCopyrightText: 2025 Espressif Systems (Shanghai) CO LTD,
# other contributors as noted.
#
# SPDX-License-Identifier: GPL-2.0-or-later

from .logger import log
from .model import FLASH_MAPPED_KINDS, RegionKind
from .util import ConflictWarning

CODE_SET_NAME = "code"

SOURCE_CREATED = "espmapper"
SOURCE_MERGED = "merged"


def region_name(kind, addr):
    """
    Name of the region holding a segment. Flash-mapped kinds exist once per
    image, RAM kinds get the load address appended.
    """
    if kind in FLASH_MAPPED_KINDS:
        return kind.name
    return f"{kind.name}_{addr:x}"


def _conflict(warnings, message, addr):
    log.warning(message)
    warnings.append(ConflictWarning(message, addr))


def map_segments(space, image, code_set=None, monitor=None):
    """
    Apply the segments of an app image to the address space.

    Segments not covered by an existing region become new initialized
    regions. A region already containing the segment start (e.g. from a ROM
    image loaded earlier) is renamed and its bytes are overwritten. Ranges of
    code segments are added to code_set, the image entry point is registered
    at the end.

    Returns the list of ConflictWarning found, conflicting segments are
    skipped.
    """
    if code_set is None:
        code_set = space.get_address_set(CODE_SET_NAME)
    warnings = []
    total = len(image.segments)

    for i, seg in enumerate(image.segments):
        if monitor is not None:
            monitor.check_cancelled()
            monitor.progress(i, total, "Mapping segments: ")

        if seg.kind == RegionKind.PADDING or seg.length == 0:
            log.debug(f"Skipping segment at {seg.addr:#010x} ({seg.kind.name})")
            continue

        name = region_name(seg.kind, seg.addr)
        read, write, execute = seg.kind.permissions
        region = space.get_region(seg.addr)

        if region is None:
            clash = space.intersecting(seg.addr, seg.end)
            if clash:
                _conflict(
                    warnings,
                    f"Segment {name} [{seg.addr:#x}, {seg.end:#x}) overlaps region "
                    f"{clash[0].name} which does not contain its start, skipped.",
                    seg.addr,
                )
                continue
            space.create_initialized_region(
                name,
                seg.addr,
                seg.data,
                read,
                write,
                execute,
                source_name=SOURCE_CREATED,
            )
        else:
            if seg.end > region.end:
                _conflict(
                    warnings,
                    f"Segment {name} [{seg.addr:#x}, {seg.end:#x}) runs past the end "
                    f"of region {region.name} ({region.end:#x}), skipped.",
                    seg.addr,
                )
                continue
            region.name = name
            space.convert_to_initialized(region)
            space.put_bytes(seg.addr, seg.data)
            region.source_name = SOURCE_MERGED

        if seg.is_code:
            code_set.add(seg.addr, seg.end)

    if monitor is not None:
        monitor.progress(total, total, "Mapping segments: ")
    space.add_entry_point(image.entrypoint)
    return warnings
