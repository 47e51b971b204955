# SPDX-FileCopyrightText: 2025 Espressif Systems (Shanghai) CO LTD
#
# SPDX-License-Identifier: GPL-2.0-or-later

import os

import rich_click as click

from espmapper.bin_image import intel_hex_to_bin
from espmapper.logger import log

################################ Custom types #################################


class AnyIntType(click.ParamType):
    """Custom type to parse any integer value - decimal, hex, octal, or binary"""

    name = "integer"

    def convert(
        self, value: str, param: click.Parameter | None, ctx: click.Context
    ) -> int:
        if isinstance(value, int):  # default value is already an int
            return value
        try:
            return arg_auto_int(value)
        except ValueError:
            raise click.BadParameter(f"{value!r} is not a valid integer.")


class AutoHex2BinType(click.Path):
    """Custom type for auto conversion of input files from hex to bin"""

    def __init__(self, exists=True):
        super().__init__(exists=exists, dir_okay=False)

    def convert(
        self, value: str, param: click.Parameter | None, ctx: click.Context
    ) -> bytes:
        value = super().convert(value, param, ctx)
        try:
            with open(value, "rb") as f:
                # if hex file was detected return the converted content
                # otherwise keep the original file content
                return intel_hex_to_bin(f.read())
        except IOError as e:
            raise click.BadParameter(str(e))


class SvdPathsType(click.Path):
    """SVD file or directory holding SVD files, expanded to a list of files"""

    name = "svd"

    def __init__(self):
        super().__init__(exists=True, file_okay=True, dir_okay=True)

    def convert(
        self, value: str, param: click.Parameter | None, ctx: click.Context
    ) -> list[str]:
        value = super().convert(value, param, ctx)
        if not os.path.isdir(value):
            return [value]
        found = sorted(
            os.path.join(value, name)
            for name in os.listdir(value)
            if name.lower().endswith(".svd")
        )
        if not found:
            log.warning(f"No SVD files found in {value}.")
        return found


class Group(click.RichGroup):
    def get_command(self, ctx: click.Context, cmd_name: str) -> click.Command | None:
        """Allow dash and underscore for commands"""
        rv = click.Group.get_command(self, ctx, cmd_name)
        if rv is not None:
            return rv
        for cmd in self.list_commands(ctx):
            if cmd.replace("-", "_") == cmd_name:
                return click.Group.get_command(self, ctx, cmd)
        return None

    def resolve_command(
        self, ctx: click.Context, args: list[str]
    ) -> tuple[str | None, click.Command | None, list[str]]:
        # always return the full command name
        _, cmd, args = super().resolve_command(ctx, args)
        if cmd is None:
            return None, None, args
        return cmd.name, cmd, args


############################## Helper functions ###############################


def arg_auto_int(x: str) -> int:
    """Parse an integer value in any base"""
    return int(x, 0)


def split_env_paths(value: str | None) -> list[str]:
    """Split a path list taken from an environment variable"""
    if not value:
        return []
    return [p for p in value.split(os.pathsep) if p]
