"""CLI configuration overrides for runtime tunables.

Loads the optional YAML file onto Constants, then applies CLI flags with
highest precedence.
"""

from __future__ import annotations

import logging

from constants import Constants, _load_yaml_config, apply_config

logger = logging.getLogger(__name__)


def apply_overrides(args) -> None:
    """Apply the config file and CLI overrides onto Constants.

    Args:
        args (argparse.Namespace): Parsed command line.

    Raises:
        ValueError: If the config file does not hold a mapping.
    """
    apply_config(_load_yaml_config(getattr(args, "CONFIG", None)))

    if getattr(args, "MIRROR", None):
        Constants.MIRROR = args.MIRROR.rstrip("/")
    if getattr(args, "OUTPUT_DIR", None):
        Constants.OUTPUT_DIR = args.OUTPUT_DIR
    logger.debug("Using mirror %s", Constants.MIRROR)
