import hashlib
import os
import struct

import pytest

from espmapper.logger import log


def pytest_configure(config):
    # register custom markers
    config.addinivalue_line(
        "markers",
        "host_test: mark espmapper tests that run on the host machine only.",
    )


def need_to_install_package_err():
    pytest.exit(
        "To run the tests, install espmapper in development mode: "
        "pip install -e .[test]"
    )


@pytest.fixture(scope="session", autouse=True)
def set_terminal_width():
    """Make sure terminal width is set to 120 columns for consistent test output."""
    os.environ["COLUMNS"] = "120"


@pytest.fixture(autouse=True)
def reset_verbosity():
    """CLI runs change the verbosity of the shared logger"""
    yield
    log.set_verbosity("auto")


############################# Synthetic images ################################

IROM_ADDR = 0x400D0000
DROM_ADDR = 0x3F400020
IRAM_ADDR = 0x40080000
DRAM_ADDR = 0x3FFB0000


def make_app_image(
    segments,
    entry=IROM_ADDR,
    chip_id=0,
    append_digest=False,
    footer=True,
    segment_count=None,
):
    """
    Build an app image from (load address, payload) pairs, laid out the way
    esptool writes them.
    """
    image = struct.pack(
        "<BBBBI",
        0xE9,
        len(segments) if segment_count is None else segment_count,
        2,  # DIO
        0x20,  # 4MB, 40m
        entry,
    )
    image += struct.pack(
        "<BBBBHBHH4sB",
        0xEE,
        0,
        0,
        0,
        chip_id,
        0,
        0,
        0,
        b"\x00" * 4,
        1 if append_digest else 0,
    )
    chk = 0xEF
    for addr, data in segments:
        image += struct.pack("<II", addr, len(data)) + data
        for b in data:
            chk ^= b
    if not footer:
        return image
    image += b"\x00" * (15 - len(image) % 16)
    image += bytes([chk])
    if append_digest:
        image += hashlib.sha256(image).digest()
    return image


def make_partition_table(partitions, with_md5=True):
    """partitions: (type, subtype, offset, size, label) tuples"""
    table = b"".join(
        struct.pack(
            "<2sBBII16sI", b"\xaa\x50", ptype, subtype, offset, size, label.encode(), 0
        )
        for ptype, subtype, offset, size, label in partitions
    )
    if with_md5:
        table += b"\xeb\xeb" + b"\xff" * 14 + hashlib.md5(table).digest()
    return table + b"\xff" * (0xC00 - len(table))


def make_flash_image(partitions, contents=None, size=None, with_md5=True):
    """
    Flash dump with a bootloader at 0x1000, the partition table at 0x8000 and
    contents ({offset: bytes}) written at their offsets.
    """
    if size is None:
        size = max(offset + length for _, _, offset, length, _ in partitions)
    flash = bytearray(b"\xff" * size)
    bootloader = make_app_image([(DRAM_ADDR, b"\x01\x02\x03\x04")], entry=0x40080400)
    flash[0x1000 : 0x1000 + len(bootloader)] = bootloader
    table = make_partition_table(partitions, with_md5)
    flash[0x8000 : 0x8000 + len(table)] = table
    for offset, data in (contents or {}).items():
        flash[offset : offset + len(data)] = data
    return bytes(flash)


FACTORY_PARTITIONS = [
    (0x01, 0x02, 0x9000, 0x6000, "nvs"),
    (0x01, 0x01, 0xF000, 0x1000, "phy_init"),
    (0x00, 0x00, 0x10000, 0x100000, "factory"),
]


SVD_TEMPLATE = """<?xml version="1.0" encoding="utf-8"?>
<device schemaVersion="1.1" xmlns:xs="http://www.w3.org/2001/XMLSchema-instance">
  <name>{device}</name>
  <version>1.0</version>
  <description>Test device</description>
  <addressUnitBits>8</addressUnitBits>
  <width>32</width>
  <size>32</size>
  <peripherals>
{peripherals}
  </peripherals>
</device>
"""

PERIPHERAL_TEMPLATE = """    <peripheral{derived}>
      <name>{name}</name>
      <description>{name} peripheral</description>
      <baseAddress>{base}</baseAddress>
{block}{registers}
    </peripheral>"""

BLOCK_TEMPLATE = """      <addressBlock>
        <offset>0x0</offset>
        <size>{size}</size>
        <usage>registers</usage>
      </addressBlock>"""

REGISTER_TEMPLATE = """        <register>
          <name>{name}</name>
          <description>{name} register</description>
          <addressOffset>{offset}</addressOffset>
          <size>32</size>
        </register>"""


def make_peripheral(name, base, size=None, registers=(), derived_from=None):
    return PERIPHERAL_TEMPLATE.format(
        name=name,
        base=base,
        derived=f' derivedFrom="{derived_from}"' if derived_from else "",
        block=BLOCK_TEMPLATE.format(size=size) if size is not None else "",
        registers=(
            "\n      <registers>\n"
            + "\n".join(
                REGISTER_TEMPLATE.format(name=reg, offset=offset)
                for reg, offset in registers
            )
            + "\n      </registers>"
            if registers
            else ""
        ),
    )


def make_svd(peripherals, device="ESP32"):
    return SVD_TEMPLATE.format(device=device, peripherals="\n".join(peripherals))


def write_file(path, content):
    mode = "wb" if isinstance(content, bytes) else "w"
    with open(path, mode) as f:
        f.write(content)
    return str(path)
