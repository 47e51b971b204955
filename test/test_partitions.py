from conftest import (
    FACTORY_PARTITIONS,
    IROM_ADDR,
    make_app_image,
    make_flash_image,
    make_partition_table,
    need_to_install_package_err,
)

import pytest

try:
    from espmapper.model import Partition
    from espmapper.partitions import (
        has_bootloader,
        parse_flash_image,
        save_partition_table,
    )
    from espmapper.util import FormatError, RangeError
except ImportError:
    need_to_install_package_err()


@pytest.mark.host_test
class TestParseFlashImage:
    def test_partitions_recovered_in_order(self):
        flash = parse_flash_image(make_flash_image(FACTORY_PARTITIONS))
        assert [
            (p.type, p.subtype, p.offset, p.size, p.label) for p in flash.partitions
        ] == FACTORY_PARTITIONS

    def test_names(self):
        flash = parse_flash_image(make_flash_image(FACTORY_PARTITIONS))
        nvs, phy, factory = flash.partitions
        assert (nvs.type_name, nvs.subtype_name) == ("data", "nvs")
        assert (phy.type_name, phy.subtype_name) == ("data", "phy")
        assert (factory.type_name, factory.subtype_name) == ("app", "factory")
        assert factory.is_app and not nvs.is_app

    def test_ota_subtypes(self):
        partitions = [
            (0x01, 0x00, 0x9000, 0x2000, "otadata"),
            (0x00, 0x10, 0x10000, 0x10000, "ota_0"),
            (0x00, 0x11, 0x20000, 0x10000, "ota_1"),
        ]
        flash = parse_flash_image(make_flash_image(partitions))
        assert [p.subtype_name for p in flash.partitions] == ["ota", "ota_0", "ota_1"]
        assert [p.label for p in flash.app_partitions()] == ["ota_0", "ota_1"]

    def test_get_partition(self):
        flash = parse_flash_image(make_flash_image(FACTORY_PARTITIONS))
        assert flash.get_partition("factory").offset == 0x10000
        assert flash.get_partition("missing") is None

    def test_md5(self):
        flash = parse_flash_image(make_flash_image(FACTORY_PARTITIONS))
        assert flash.md5_valid is True
        flash = parse_flash_image(make_flash_image(FACTORY_PARTITIONS, with_md5=False))
        assert flash.md5_valid is None

    def test_md5_mismatch_is_only_a_warning(self, capsys):
        data = bytearray(make_flash_image(FACTORY_PARTITIONS))
        md5_offs = 0x8000 + 32 * len(FACTORY_PARTITIONS) + 16
        data[md5_offs] ^= 0xFF
        flash = parse_flash_image(bytes(data))
        assert flash.md5_valid is False
        assert len(flash.partitions) == 3
        assert "MD5 does not match" in capsys.readouterr().out

    def test_bootloader_parsed(self):
        flash = parse_flash_image(make_flash_image(FACTORY_PARTITIONS))
        assert flash.bootloader is not None
        assert flash.bootloader.entrypoint == 0x40080400

    def test_partition_app_image(self):
        app = make_app_image([(IROM_ADDR, b"\x00" * 0x20)])
        flash = parse_flash_image(
            make_flash_image(FACTORY_PARTITIONS, contents={0x10000: app})
        )
        image = flash.get_partition("factory").parse_app_image()
        assert image.entrypoint == IROM_ADDR
        assert len(image.segments) == 1

    def test_table_size_limit(self):
        # 0xC00 / 32 entries fit, no terminator needed
        partitions = [
            (0x01, 0x81, 0x10000 + i * 0x1000, 0x1000, f"p{i}") for i in range(96)
        ]
        table = make_partition_table(partitions, with_md5=False)
        assert len(table) == 0xC00
        flash = parse_flash_image(make_flash_image(partitions, with_md5=False))
        assert len(flash.partitions) == 96


@pytest.mark.host_test
class TestParseFlashImageErrors:
    def test_no_bootloader(self):
        data = bytearray(make_flash_image(FACTORY_PARTITIONS))
        data[0x1000] = 0xFF
        assert not has_bootloader(data)
        with pytest.raises(FormatError, match="not a flash dump"):
            parse_flash_image(bytes(data))

    def test_too_short(self):
        with pytest.raises(FormatError):
            parse_flash_image(b"\xff" * 0x100)

    def test_invalid_entry_magic(self):
        data = bytearray(make_flash_image(FACTORY_PARTITIONS))
        data[0x8020] = 0x00
        with pytest.raises(FormatError, match="Invalid partition table entry"):
            parse_flash_image(bytes(data))

    def test_empty_table(self):
        data = bytearray(make_flash_image(FACTORY_PARTITIONS))
        data[0x8000:0x8C00] = b"\xff" * 0xC00
        with pytest.raises(FormatError, match="No partition table"):
            parse_flash_image(bytes(data))

    def test_partition_beyond_data(self):
        data = make_flash_image(FACTORY_PARTITIONS)
        with pytest.raises(RangeError, match="partition 'factory'"):
            parse_flash_image(data[:0x80000])

    def test_zero_length(self):
        partitions = [(0x00, 0x00, 0x10000, 0, "factory")]
        with pytest.raises(FormatError, match="zero length"):
            parse_flash_image(make_flash_image(partitions, size=0x20000))

    def test_overlap(self):
        partitions = [
            (0x00, 0x00, 0x10000, 0x10000, "factory"),
            (0x00, 0x10, 0x18000, 0x10000, "ota_0"),
        ]
        with pytest.raises(FormatError, match="overlaps"):
            parse_flash_image(make_flash_image(partitions))


@pytest.mark.host_test
def test_save_partition_table():
    partitions = [
        Partition(type, subtype, offset, size, label)
        for type, subtype, offset, size, label in FACTORY_PARTITIONS
    ]
    assert save_partition_table(partitions) == make_partition_table(FACTORY_PARTITIONS)
