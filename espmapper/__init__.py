# SPDX-FileCopyrightText: 2014-2025 Fredrik Ahlberg, Angus Gratton,
# Espressif Systems (Shanghai) CO LTD, other contributors as noted.
#
# SPDX-License-Identifier: GPL-2.0-or-later

__all__ = [
    "image_info",
    "load",
    "load_image",
    "partition_table",
    "peripherals",
    "probe",
    "version",
]

__version__ = "1.0.0"

import os
import sys

import rich_click as click

from espmapper.cli_util import (
    AnyIntType,
    AutoHex2BinType,
    Group,
    SvdPathsType,
    split_env_paths,
)
from espmapper.cmds import (
    OUTPUT_FORMATS,
    image_info,
    load_image,
    partition_table,
    peripherals,
    version,
)
from espmapper.config import LoadConfig
from espmapper.loader import load, probe
from espmapper.logger import log
from espmapper.util import FatalError, TaskMonitor

# Show arguments in the help output, this was default in argparse
click.rich_click.SHOW_ARGUMENTS = True
# Force alignment of commands table with groups
click.rich_click.STYLE_COMMANDS_TABLE_COLUMN_WIDTH_RATIO = (1, 3)
click.rich_click.COMMAND_GROUPS = {
    "espmapper": [
        {
            "name": "Inspection commands",
            "commands": ["partition-table", "image-info", "peripherals"],
        },
        {
            "name": "Mapping commands",
            "commands": ["load", "version"],
        },
    ],
}

################################### REUSABLE OPTIONS ###################################


def add_partition_option(function):
    function = click.option(
        "--partition",
        "-P",
        default=os.environ.get("ESPMAPPER_PARTITION", None),
        help="App partition to use when the input is a flash dump. "
        "Default: the configured default_partition, else the first app partition.",
    )(function)
    return function


############################### GLOBAL OPTIONS AND MAIN ###############################


@click.group(
    cls=Group,
    no_args_is_help=True,
    context_settings=dict(help_option_names=["-h", "--help"], max_content_width=120),
    help=f"espmapper v{__version__} - memory map reconstruction for ESP32 and "
    "ESP32-S2 flash dumps and app images.",
)
@click.option(
    "--bootloader-offset",
    type=AnyIntType(),
    default=None,
    help="Offset of the 2nd stage bootloader in a flash dump. Default: 0x1000.",
)
@click.option(
    "--partition-table-offset",
    type=AnyIntType(),
    default=None,
    help="Offset of the partition table in a flash dump. Default: 0x8000.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Print debug output, e.g. why an input was not recognized.",
)
@click.option("--silent", "-s", is_flag=True, help="Print only warnings and errors.")
@click.pass_context
def cli(ctx, bootloader_offset, partition_table_offset, verbose, silent):
    ctx.ensure_object(dict)
    if verbose:
        log.set_verbosity("verbose")
    elif silent:
        log.set_verbosity("silent")
    ctx.obj["bootloader_offset"] = bootloader_offset
    ctx.obj["partition_table_offset"] = partition_table_offset


def prepare(ctx):
    """Print the banner and read the config file, with the global overrides"""
    log.print(f"espmapper v{__version__}")
    config = LoadConfig.from_config_file(verbose=True)
    if ctx.obj["bootloader_offset"] is not None:
        config.bootloader_offset = ctx.obj["bootloader_offset"]
    if ctx.obj["partition_table_offset"] is not None:
        config.partition_table_offset = ctx.obj["partition_table_offset"]
    return config


@cli.command("partition-table")
@click.argument("filename", type=AutoHex2BinType())
@click.pass_context
def partition_table_cli(ctx, filename):
    """Print the partition table of a flash dump."""
    partition_table(filename, prepare(ctx))


@cli.command("image-info")
@click.argument("filename", type=AutoHex2BinType())
@add_partition_option
@click.pass_context
def image_info_cli(ctx, filename, partition):
    """Print information about an app image, standalone or inside a flash dump."""
    image_info(filename, partition, prepare(ctx))


@cli.command("load")
@click.argument("filename", type=AutoHex2BinType())
@add_partition_option
@click.option(
    "--svd",
    "svd",
    multiple=True,
    type=SvdPathsType(),
    help="SVD file or directory of SVD files, can be repeated. The file matching "
    "the chip is used. Default: ESPMAPPER_SVD or the configured svd_dir.",
)
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(OUTPUT_FORMATS),
    default="text",
    help="Report format.",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False),
    help="Write the yaml or json report to a file.",
)
@click.pass_context
def load_cli(ctx, filename, partition, svd, output_format, output):
    """Map an image into an in-memory address space and print the memory map."""
    if output_format != "text" and output is None:
        # stdout carries only the report
        log.set_verbosity("silent")
    config = prepare(ctx)
    svd_files = [path for paths in svd for path in paths]
    if not svd_files:
        svd_files = split_env_paths(os.environ.get("ESPMAPPER_SVD"))
    load_image(
        filename,
        partition,
        svd_files,
        output_format,
        output,
        config,
        monitor=TaskMonitor(log.progress_bar),
    )


@cli.command("peripherals")
@click.argument("svd_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def peripherals_cli(ctx, svd_file):
    """List the peripherals described in an SVD file."""
    prepare(ctx)
    peripherals(svd_file)


@cli.command("version")
@click.pass_context
def version_cli(ctx):
    """Print espmapper version."""
    prepare(ctx)
    version()


def main(argv: list[str] | None = None):
    """
    Main function for espmapper

    argv - Optional override for default arguments parsing (that uses sys.argv),
    can be a list of custom arguments as strings.
    """
    cli(args=argv or sys.argv[1:])


def _main():
    try:
        main()
    except FatalError as e:
        log.error(f"\nA fatal error occurred: {e}")
        sys.exit(2)
    except KeyboardInterrupt:
        log.error("KeyboardInterrupt: Run cancelled by user.")
        sys.exit(2)


if __name__ == "__main__":
    _main()
