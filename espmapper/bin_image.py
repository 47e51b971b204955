# SPDX-FileCopyrightText: 2014-2025 Fredrik Ahlberg, Angus Gratton,
# Espressif Systems (Shanghai) CO LTD, other contributors as noted.
#
# SPDX-License-Identifier: GPL-2.0-or-later

import hashlib
import io
import struct

from intelhex import IntelHex, IntelHexError

from .logger import log
from .model import AppImage, ChipVariant, RegionKind, Segment
from .targets import ESP32Target, target_for_chip_id, target_for_variant
from .util import FormatError, RangeError, hexify, sanitize_string

ESP_IMAGE_MAGIC = 0xE9

# Initial state for the checksum routine
ESP_CHECKSUM_MAGIC = 0xEF

COMMON_HEADER_FMT = "<BBBBI"
EXTENDED_HEADER_FMT = "<BBBBHBHH4sB"
SEG_HEADER_FMT = "<II"
SEG_HEADER_LEN = 8
SHA256_DIGEST_LEN = 32

MAX_SEGMENTS = 16

# ROM bootloader will read the wp_pin field if SPI flash
# pins are remapped via flash, this value makes it skip them.
WP_PIN_DISABLED = 0xEE

APP_DESC_MAGIC = 0xABCD5432
APP_DESC_STRUCT_FMT = "<II" + "8s" + "32s32s16s16s32s32sHHB" + "3s" + "72s"
APP_DESC_LEN = struct.calcsize(APP_DESC_STRUCT_FMT)


def checksum(data, state=ESP_CHECKSUM_MAGIC):
    """Calculate checksum of a blob, as it is defined by the ROM"""
    for b in data:
        state ^= b
    return state


def align_file_position(f, size):
    """Align the position in the file to the next block of specified size"""
    align = (size - 1) - (f.tell() % size)
    f.seek(align, 1)


def classify(addr, variant=ChipVariant.GENERIC):
    """Region kind of a load address for the given chip variant"""
    return target_for_variant(variant).classify(addr)


def _read(f, size, what):
    offset = f.tell()
    data = f.read(size)
    if len(data) < size:
        raise RangeError(what, offset, size, len(data))
    return data


def _load_segment(f, variant):
    file_offs = f.tell()
    addr, size = struct.unpack(
        SEG_HEADER_FMT, _read(f, SEG_HEADER_LEN, "segment header")
    )
    offset = f.tell()
    segment_data = f.read(size)
    if len(segment_data) < size:
        raise RangeError("segment 0x%08x" % addr, offset, size, len(segment_data))
    return Segment(addr, segment_data, classify(addr, variant), file_offs)


def parse_app_image(data):
    """
    Parse an application image (or the 2nd stage bootloader image, it shares
    the format) from bytes starting with the image header.

    The chip variant is resolved from the chip ID in the extended header and
    used to classify every segment.

    Raises FormatError for a wrong magic byte or invalid header fields and
    RangeError if a header or segment goes past the end of data.
    """
    f = io.BytesIO(data)
    if not data or data[0] != ESP_IMAGE_MAGIC:
        raise FormatError(
            "Not an app image (invalid magic number: %s)."
            % (f"{data[0]:#x}" if data else "no data")
        )

    (
        _magic,
        segment_count,
        flash_mode,
        flash_size_freq,
        entrypoint,
    ) = struct.unpack(COMMON_HEADER_FMT, _read(f, 8, "image header"))
    (
        wp_pin,
        drv0,
        drv1,
        drv2,
        chip_id,
        min_rev,
        min_rev_full,
        max_rev_full,
        reserved,
        append_digest,
    ) = struct.unpack(EXTENDED_HEADER_FMT, _read(f, 16, "extended image header"))

    if segment_count > MAX_SEGMENTS:
        raise FormatError(
            "Invalid segment count %d (max %d). "
            "Usually this indicates a linker script problem."
            % (segment_count, MAX_SEGMENTS)
        )
    if append_digest not in (0, 1):
        raise FormatError(
            "Invalid value for append_digest field (0x%02x). Should be 0 or 1."
            % append_digest
        )

    target = target_for_chip_id(chip_id)
    if target is None:
        log.note(
            f"Unknown chip ID {chip_id} in image header, "
            f"using the {ESP32Target.CHIP_NAME} memory layout."
        )
        target = ESP32Target
    if any(reserved):
        log.warning(
            "Some reserved header fields have non-zero values. "
            "This image may be from a newer ESP-IDF?"
        )

    image = AppImage(
        entrypoint=entrypoint,
        variant=target.VARIANT,
        chip_id=chip_id,
        flash_mode=flash_mode,
        flash_size_freq=flash_size_freq,
        wp_pin=wp_pin,
        spi_drive=bytes((drv0, drv1, drv2)),
        min_rev=min_rev,
        min_rev_full=min_rev_full,
        max_rev_full=max_rev_full,
        reserved=reserved,
        append_digest=append_digest == 1,
    )

    for _ in range(segment_count):
        image.segments.append(_load_segment(f, image.variant))

    image.calc_checksum = calculate_checksum(image)
    _load_footer(f, image)
    image.app_desc = find_app_desc(image)
    return image


def _load_footer(f, image):
    # The checksum is stored in the last byte of a 16 byte block,
    # a dump cut right after the segments has no footer
    align_file_position(f, 16)
    footer = f.read(1)
    if not footer:
        log.debug("Image has no checksum footer.")
        return
    image.checksum = footer[0]
    if image.append_digest:
        end = f.tell()
        stored = f.read(SHA256_DIGEST_LEN)
        if len(stored) == SHA256_DIGEST_LEN:
            image.stored_digest = stored
            image.calc_digest = hashlib.sha256(f.getvalue()[:end]).digest()


def calculate_checksum(image):
    state = ESP_CHECKSUM_MAGIC
    for seg in image.segments:
        state = checksum(seg.data, state)
    return state


def save_app_image(image):
    """
    Encode an AppImage back into its binary form: headers, segments in order,
    checksum and (if enabled) the SHA-256 digest.
    """
    f = io.BytesIO()
    f.write(
        struct.pack(
            COMMON_HEADER_FMT,
            ESP_IMAGE_MAGIC,
            len(image.segments),
            image.flash_mode,
            image.flash_size_freq,
            image.entrypoint,
        )
    )
    drive = bytes(image.spi_drive).ljust(3, b"\x00")
    f.write(
        struct.pack(
            EXTENDED_HEADER_FMT,
            image.wp_pin,
            drive[0],
            drive[1],
            drive[2],
            image.chip_id,
            image.min_rev,
            image.min_rev_full,
            image.max_rev_full,
            bytes(image.reserved).ljust(4, b"\x00"),
            1 if image.append_digest else 0,
        )
    )
    for segment in image.segments:
        f.write(struct.pack(SEG_HEADER_FMT, segment.addr, len(segment.data)))
        f.write(segment.data)

    # pad so the checksum lands on the last byte of a 16 byte block
    f.write(b"\x00" * (15 - f.tell() % 16))
    value = image.checksum if image.checksum is not None else calculate_checksum(image)
    f.write(struct.pack("B", value))
    if image.append_digest:
        f.write(hashlib.sha256(f.getvalue()).digest())
    return f.getvalue()


def parse_app_desc(segment_data):
    """
    Check if correct magic word is present in the app description and parse the
    esp_app_desc_t struct found at the start of the first DROM segment
    """
    if len(segment_data) < APP_DESC_LEN:
        return None
    (
        magic_word,
        secure_version,
        _reserv1,
        version,
        project_name,
        time,
        date,
        idf_ver,
        app_elf_sha256,
        min_efuse_blk_rev_full,
        max_efuse_blk_rev_full,
        mmu_page_size,
        _reserv3,
        _reserv2,
    ) = struct.unpack(APP_DESC_STRUCT_FMT, segment_data[:APP_DESC_LEN])

    if magic_word != APP_DESC_MAGIC:
        return None

    return {
        "secure_version": secure_version,
        "version": sanitize_string(version),
        "project_name": sanitize_string(project_name),
        "time": sanitize_string(time),
        "date": sanitize_string(date),
        "idf_ver": sanitize_string(idf_ver),
        "app_elf_sha256": hexify(app_elf_sha256, uppercase=False),
        "min_efuse_blk_rev_full": (
            f"{min_efuse_blk_rev_full // 100}.{min_efuse_blk_rev_full % 100}"
        ),
        "max_efuse_blk_rev_full": (
            f"{max_efuse_blk_rev_full // 100}.{max_efuse_blk_rev_full % 100}"
        ),
        "mmu_page_size": (
            f"{2**mmu_page_size // 1024} KB" if mmu_page_size != 0 else None
        ),
    }


def find_app_desc(image):
    for segment in image.segments:
        if segment.kind == RegionKind.DROM0:
            return parse_app_desc(segment.data)
    return None


def intel_hex_to_bin(data):
    """
    Convert Intel HEX content to a flat binary starting at offset 0 (the
    flash dump start). Non-HEX content is returned unchanged.
    """
    if data[:1] != b":":
        return data
    ih = IntelHex()
    try:
        ih.loadhex(io.StringIO(data.decode("ascii")))
    except (UnicodeDecodeError, IntelHexError, ValueError):
        # Starts with ':' but is not HEX, keep the raw bytes
        return data
    if ih.minaddr() is None:
        return b""
    return ih.tobinstr(start=0)
