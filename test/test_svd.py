from types import SimpleNamespace

from conftest import make_peripheral, make_svd, need_to_install_package_err, write_file

import pytest

try:
    from espmapper.address_space import AddressSpace
    from espmapper.model import ChipVariant, PeripheralMap, Register
    from espmapper.svd import (
        PERIPHERALS_NAMESPACE,
        build_record_type,
        import_peripherals,
        parse_svd,
        select_svd_file,
        to_peripheral_maps,
    )
    from espmapper.util import FormatError, LoadCancelled, TaskMonitor
except ImportError:
    need_to_install_package_err()


UART0 = PeripheralMap(
    "UART0",
    0x3FF40000,
    0x100,
    [Register("FIFO", 0x0), Register("INT_RAW", 0x4), Register("CLKDIV", 0x14)],
)
GPIO = PeripheralMap("GPIO", 0x3FF44000, 0x200, [Register("OUT", 0x4)])


def svd_peripheral(name, base, size=0x100, registers=(), derived_from=None):
    return SimpleNamespace(
        name=name,
        base_address=base,
        address_blocks=[SimpleNamespace(offset=0, size=size)] if size else [],
        registers=[
            SimpleNamespace(name=reg, address_offset=offset, description="")
            for reg, offset in registers
        ],
        description="",
        derived_from=derived_from,
    )


@pytest.mark.host_test
class TestSelectSvdFile:
    FILES = ["/svd/esp32.svd", "/svd/esp32s2.svd"]

    def test_by_variant(self):
        assert select_svd_file(self.FILES, ChipVariant.GENERIC) == "/svd/esp32.svd"
        assert select_svd_file(self.FILES, ChipVariant.ESP32S2) == "/svd/esp32s2.svd"

    def test_order_does_not_matter(self):
        files = list(reversed(self.FILES))
        assert select_svd_file(files, ChipVariant.GENERIC) == "/svd/esp32.svd"
        assert select_svd_file(files, ChipVariant.ESP32S2) == "/svd/esp32s2.svd"

    def test_marker_variants_in_name(self):
        files = ["/svd/ESP32-S2.svd", "/svd/ESP32.svd"]
        assert select_svd_file(files, ChipVariant.GENERIC) == "/svd/ESP32.svd"

    def test_fallback_to_first(self):
        assert select_svd_file(["/svd/esp32.svd"], ChipVariant.ESP32S2) == (
            "/svd/esp32.svd"
        )
        assert select_svd_file(["a.svd", "b.svd"], ChipVariant.GENERIC) == "a.svd"

    def test_empty(self):
        assert select_svd_file([], ChipVariant.GENERIC) is None


@pytest.mark.host_test
class TestToPeripheralMaps:
    def test_fields(self):
        maps, errors = to_peripheral_maps(
            [svd_peripheral("UART0", 0x3FF40000, 0x100, [("FIFO", 0), ("CONF0", 0x20)])]
        )
        assert errors == []
        uart = maps[0]
        assert (uart.name, uart.base_address, uart.size) == ("UART0", 0x3FF40000, 0x100)
        assert [(r.name, r.offset) for r in uart.registers] == [
            ("FIFO", 0),
            ("CONF0", 0x20),
        ]

    def test_missing_fields_skip_only_that_peripheral(self):
        maps, errors = to_peripheral_maps(
            [
                svd_peripheral(None, 0x3FF40000),
                svd_peripheral("NOBASE", None),
                svd_peripheral("NOSIZE", 0x3FF42000, size=None),
                svd_peripheral("GPIO", 0x3FF44000, 0x200, [("OUT", 4)]),
            ]
        )
        assert [p.name for p in maps] == ["GPIO"]
        assert len(errors) == 3
        assert all(isinstance(e, FormatError) for e in errors)
        assert "NOBASE has no baseAddress" in str(errors[1])
        assert "NOSIZE has no addressBlock size" in str(errors[2])

    def test_derived_peripheral_inherits(self):
        maps, errors = to_peripheral_maps(
            [
                svd_peripheral("UART0", 0x3FF40000, 0x100, [("FIFO", 0)]),
                svd_peripheral("UART1", 0x3FF50000, size=None, derived_from="UART0"),
            ]
        )
        assert errors == []
        uart1 = maps[1]
        assert uart1.base_address == 0x3FF50000
        assert uart1.size == 0x100
        assert [r.name for r in uart1.registers] == ["FIFO"]
        assert uart1.derived_from == "UART0"


@pytest.mark.host_test
class TestParseSvd:
    def test_parse_file(self, tmp_path):
        path = write_file(
            tmp_path / "esp32.svd",
            make_svd(
                [
                    make_peripheral(
                        "UART0",
                        "0x3FF40000",
                        "0x100",
                        [("FIFO", "0x0"), ("INT_RAW", "0x4"), ("CLKDIV", "20")],
                    ),
                    make_peripheral("GPIO", "0x3FF44000", "0x200", [("OUT", "0x4")]),
                ]
            ),
        )
        maps, errors = parse_svd(path)
        assert errors == []
        assert [p.name for p in maps] == ["UART0", "GPIO"]
        uart = maps[0]
        assert uart.base_address == 0x3FF40000
        assert uart.size == 0x100
        assert [(r.name, r.offset) for r in uart.registers] == [
            ("FIFO", 0),
            ("INT_RAW", 4),
            ("CLKDIV", 20),
        ]

    def test_malformed_document(self, tmp_path):
        path = write_file(tmp_path / "broken.svd", "<device><peripherals>")
        with pytest.raises(FormatError, match="Cannot parse SVD file"):
            parse_svd(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FormatError):
            parse_svd(tmp_path / "missing.svd")


@pytest.mark.host_test
class TestBuildRecordType:
    def test_fields_at_offsets(self):
        struct = build_record_type(UART0)
        assert struct.name == "UART0"
        assert struct.size == 0x100
        assert [(f.name, f.offset, f.size) for f in struct.fields] == [
            ("FIFO", 0x0, 4),
            ("INT_RAW", 0x4, 4),
            ("CLKDIV", 0x14, 4),
        ]
        assert all(f.type_name == "uint32" for f in struct.fields)

    def test_duplicate_offset_last_wins(self):
        peripheral = PeripheralMap(
            "TIMG0",
            0x3FF5F000,
            0x20,
            [Register("T0CONFIG", 0x0), Register("T0LO", 0x4), Register("ALIAS", 0x0)],
        )
        warnings = []
        struct = build_record_type(peripheral, warnings)
        assert len(struct.fields) == 2
        assert struct.field_at(0).name == "ALIAS"
        assert len(warnings) == 1
        assert warnings[0].address == 0x3FF5F000
        assert "ALIAS replaces T0CONFIG" in str(warnings[0])

    def test_overlapping_offset_replaces(self):
        peripheral = PeripheralMap(
            "SPI", 0x3FF42000, 0x10, [Register("A", 0x0), Register("B", 0x2)]
        )
        warnings = []
        struct = build_record_type(peripheral, warnings)
        assert [f.name for f in struct.fields] == ["B"]
        assert [w.address for w in warnings] == [0x3FF42002]

    def test_register_outside_block_left_out(self):
        peripheral = PeripheralMap(
            "RTC", 0x3FF48000, 0x8, [Register("A", 0x0), Register("FAR", 0x8)]
        )
        warnings = []
        struct = build_record_type(peripheral, warnings)
        assert [f.name for f in struct.fields] == ["A"]
        assert len(warnings) == 1
        assert warnings[0].address == 0x3FF48008


@pytest.mark.host_test
class TestImportPeripherals:
    def test_import(self):
        space = AddressSpace()
        warnings = import_peripherals(space, [UART0, GPIO])
        assert warnings == []

        uart = space.get_region_by_name("UART0")
        assert (uart.start, uart.size) == (0x3FF40000, 0x100)
        assert uart.permissions == "rw-"
        assert not uart.initialized

        assert set(space.data_types) == {"UART0", "GPIO"}
        assert space.listing[0x3FF40000] is space.data_types["UART0"]
        assert space.listing[0x3FF44000] is space.data_types["GPIO"]

        ns = space.get_namespace(PERIPHERALS_NAMESPACE)
        assert ns.labels == {0x3FF40000: ["UART0"], 0x3FF44000: ["GPIO"]}

    def test_reimport_replaces_types(self):
        space = AddressSpace()
        import_peripherals(space, [UART0])
        first = space.data_types["UART0"]
        warnings = import_peripherals(space, [UART0])
        assert warnings == []
        assert space.data_types["UART0"] is not first
        assert len(space.regions) == 1
        assert len(space.get_labels(0x3FF40000)) == 1
        assert len(space.namespaces) == 1

    def test_overlap_is_a_conflict(self):
        space = AddressSpace()
        space.create_uninitialized_region("DPORT", 0x3FF00000, 0x41000)
        warnings = import_peripherals(space, [UART0, GPIO])
        assert len(warnings) == 1
        assert warnings[0].address == 0x3FF40000
        # type, data and label are applied anyway
        assert 0x3FF40000 in space.listing
        assert space.get_labels(0x3FF40000)[0].namespace == PERIPHERALS_NAMESPACE
        assert space.get_region_by_name("GPIO") is not None

    def test_cancel_between_peripherals(self):
        space = AddressSpace()

        def on_progress(cur, total, prefix):
            if cur == 1:
                monitor.cancel()

        monitor = TaskMonitor(on_progress)
        with pytest.raises(LoadCancelled):
            import_peripherals(space, [UART0, GPIO, UART0], monitor)
        assert [r.name for r in space.regions] == ["UART0", "GPIO"]
