# SPDX-FileCopyrightText: 2014-2025 Espressif Systems (Shanghai) CO LTD,
# other contributors as noted.
#
# SPDX-License-Identifier: GPL-2.0-or-later

import configparser
import os

from .logger import log
from .partitions import DEFAULT_BOOTLOADER_OFFSET, DEFAULT_PARTITION_TABLE_OFFSET
from .util import FatalError

CONFIG_SECTION = "espmapper"

CONFIG_OPTIONS = [
    "bootloader_offset",
    "partition_table_offset",
    "default_partition",
    "svd_dir",
]


def _validate_config_file(file_path, verbose=False):
    if not os.path.exists(file_path):
        return False

    cfg = configparser.RawConfigParser()
    try:
        cfg.read(file_path, encoding="UTF-8")
        # Only consider it a valid config file if it contains [espmapper] section
        if cfg.has_section(CONFIG_SECTION):
            if verbose:
                unknown_opts = sorted(
                    set(cfg.options(CONFIG_SECTION)) - set(CONFIG_OPTIONS)
                )
                if unknown_opts:
                    suffix = "s" if len(unknown_opts) > 1 else ""
                    log.note(
                        "Ignoring unknown config file option{}: {}".format(
                            suffix, ", ".join(unknown_opts)
                        )
                    )
            return True
    except (UnicodeDecodeError, configparser.Error) as e:
        if verbose:
            log.note(f"Ignoring invalid config file {file_path}: {e}")
    return False


def _find_config_file(dir_path, verbose=False):
    for candidate in ("espmapper.cfg", "setup.cfg", "tox.ini"):
        cfg_path = os.path.join(dir_path, candidate)
        if _validate_config_file(cfg_path, verbose):
            return cfg_path
    return None


def load_config_file(verbose=False):
    cfg_file_path = None
    set_with_env_var = False
    env_var_path = os.environ.get("ESPMAPPER_CFGFILE")
    if env_var_path is not None and _validate_config_file(env_var_path):
        cfg_file_path = env_var_path
        set_with_env_var = True
    else:
        home_dir = os.path.expanduser("~")
        os_config_dir = (
            f"{home_dir}/.config/espmapper"
            if os.name == "posix"
            else f"{home_dir}/AppData/Local/espmapper/"
        )
        # Search priority: 1) current dir, 2) OS specific config dir, 3) home dir
        for dir_path in (os.getcwd(), os_config_dir, home_dir):
            cfg_file_path = _find_config_file(dir_path, verbose)
            if cfg_file_path:
                break

    cfg = configparser.ConfigParser()
    cfg[CONFIG_SECTION] = {}  # Empty section for when no file is found

    if cfg_file_path is not None:
        cfg.read(cfg_file_path)
        if verbose:
            msg = " (set with ESPMAPPER_CFGFILE)" if set_with_env_var else ""
            log.print(
                f"Loaded custom configuration from "
                f"{os.path.abspath(cfg_file_path)}{msg}"
            )
    return cfg, cfg_file_path


def _int_option(section, name, default):
    value = section.get(name)
    if value is None:
        return default
    try:
        return int(value, 0)
    except ValueError:
        raise FatalError(
            f"Invalid value '{value}' for config file option {name}, "
            "expected an integer."
        )


class LoadConfig:
    """Offsets and defaults used by a single load, read from the config file"""

    def __init__(
        self,
        bootloader_offset=DEFAULT_BOOTLOADER_OFFSET,
        partition_table_offset=DEFAULT_PARTITION_TABLE_OFFSET,
        default_partition=None,
        svd_dir=None,
    ):
        self.bootloader_offset = bootloader_offset
        self.partition_table_offset = partition_table_offset
        self.default_partition = default_partition
        self.svd_dir = svd_dir

    @classmethod
    def from_config_file(cls, verbose=False):
        cfg, _ = load_config_file(verbose)
        section = cfg[CONFIG_SECTION]
        return cls(
            bootloader_offset=_int_option(
                section, "bootloader_offset", DEFAULT_BOOTLOADER_OFFSET
            ),
            partition_table_offset=_int_option(
                section, "partition_table_offset", DEFAULT_PARTITION_TABLE_OFFSET
            ),
            default_partition=section.get("default_partition") or None,
            svd_dir=section.get("svd_dir") or None,
        )

    def svd_files(self):
        """All *.svd files in the configured directory, sorted by name"""
        if not self.svd_dir or not os.path.isdir(self.svd_dir):
            return []
        return sorted(
            os.path.join(self.svd_dir, name)
            for name in os.listdir(self.svd_dir)
            if name.lower().endswith(".svd")
        )
