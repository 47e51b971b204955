from .esp32 import ESP32Target
from .esp32s2 import ESP32S2Target
from ..model import ChipVariant


CHIP_DEFS = {
    "esp32": ESP32Target,
    "esp32s2": ESP32S2Target,
}

TARGET_LIST = list(CHIP_DEFS.values())

VARIANT_TARGETS = {target.VARIANT: target for target in TARGET_LIST}


def target_for_variant(variant: ChipVariant):
    return VARIANT_TARGETS[variant]


def target_for_chip_id(chip_id: int):
    """Return the target class for an image chip ID, or None if unknown"""
    for target in TARGET_LIST:
        if target.IMAGE_CHIP_ID == chip_id:
            return target
    return None
