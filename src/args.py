"""Argument parsing functionality for qtfetch."""

import argparse
from typing import List, Optional

from constants import Commands


def _add_selection_arguments(parser: argparse.ArgumentParser) -> None:
    """Positionals shared by every subcommand."""
    parser.add_argument("host",
                        help="Host platform, i.e: windows, linux, mac, all_os",
                        type=str)
    parser.add_argument("target",
                        help="Target SDK, i.e: desktop, android, ios, wasm",
                        type=str)
    parser.add_argument("version",
                        help="Qt version, i.e: 6.8.2",
                        type=str)
    parser.add_argument("arch",
                        help="Architecture, i.e: linux_gcc_64 (defaults per host)",
                        nargs="?",
                        default=None,
                        type=str)
    parser.add_argument("--mirror",
                        dest="MIRROR",
                        help="Base URL of the repository mirror to download from",
                        action="store",
                        type=str)
    parser.add_argument("--nohash",
                        dest="NO_HASH",
                        help="Skip SHA-256 verification of catalogs and archives",
                        action="store_true")


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level parser with its subcommands."""
    parser = argparse.ArgumentParser(
        prog="qtfetch",
        description="qtfetch - Qt binary installer",
        add_help=True,
    )
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str.upper,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'])
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to configuration file (YAML)",
                        action="store",
                        type=str)

    subparsers = parser.add_subparsers(dest="COMMAND", metavar="command")
    subparsers.required = True

    install = subparsers.add_parser(Commands.INSTALL_QT.value,
                                    help="Install Qt binaries")
    _add_selection_arguments(install)
    install.add_argument("-O", "--outputdir",
                         dest="OUTPUT_DIR",
                         help="Directory to install into (default: Qt)",
                         action="store",
                         type=str)
    install.add_argument("-m", "--modules",
                         dest="MODULES",
                         help="Additional modules to install",
                         nargs="+",
                         default=[],
                         type=str)
    install.add_argument("--extensions",
                         dest="EXTENSIONS",
                         help="Extensions to install (Qt 6.8.0 and later)",
                         nargs="+",
                         default=[],
                         type=str)
    install.add_argument("--archives",
                         dest="ARCHIVES",
                         help="Restrict the base package to these archives (qtbase is always kept)",
                         nargs="+",
                         default=[],
                         type=str)
    install.add_argument("--autodesktop",
                         dest="AUTO_DESKTOP",
                         help="Also install the desktop Qt needed by cross-compile targets",
                         action="store_true")

    subparsers.add_parser(Commands.LIST_QT.value,
                          help="List architectures, or modules of an architecture")
    _add_selection_arguments(subparsers.choices[Commands.LIST_QT.value])
    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parses the arguments passed to the program."""
    return build_parser().parse_args(argv)
