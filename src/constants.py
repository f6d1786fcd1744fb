"""Constants used in the project."""

import logging
import os
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    INSTALL_ERROR = 1
    CONNECTION_ERROR = 2
    CANCELLED = 130


class Commands(Enum):
    """Subcommands supported by the program.

    Args:
        Enum (string): Subcommand names as typed on the command line.
    """

    INSTALL_QT = "install-qt"
    LIST_QT = "list-qt"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    TRUSTED_MIRROR = "https://download.qt.io"
    MIRROR = TRUSTED_MIRROR
    REPOSITORY_PATH = "online/qtsdkrepository"
    UPDATES_FILE = "Updates.xml"
    HASH_SUFFIX = ".sha256"
    TARGET_DIR_PLACEHOLDER = "@TargetDir@"
    BASE_SHORT_NAME = "qtbase"
    MODULE_GROUP_NAMES = ["addons"]

    LOG_FORMAT = "[%(levelname)s] %(message)s"
    LOG_LEVEL_ENV = "QTFETCH_LOG_LEVEL"
    CONFIG_ENV = "QTFETCH_CONFIG"
    DEFAULT_CONFIG_PATHS = [
        os.path.join("~", ".config", "qtfetch", "qtfetch.yml"),
        os.path.join("~", ".config", "qtfetch", "qtfetch.yaml"),
    ]

    REQUEST_TIMEOUT = 30  # Timeout in seconds for all HTTP requests
    FILE_BUFFER_SIZE = 65536
    DOWNLOAD_CONCURRENCY = 4
    EXTRACT_CONCURRENCY = 4
    OUTPUT_DIR = "Qt"


# Keys accepted in the YAML configuration file, mapped to Constants attributes.
_CONFIG_KEYS = {
    "mirror": ("MIRROR", str),
    "request_timeout": ("REQUEST_TIMEOUT", int),
    "download_concurrency": ("DOWNLOAD_CONCURRENCY", int),
    "extract_concurrency": ("EXTRACT_CONCURRENCY", int),
    "output_dir": ("OUTPUT_DIR", str),
}


def _load_yaml_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Load the YAML configuration file.

    Lookup order: explicit path, then $QTFETCH_CONFIG, then the default
    locations under ~/.config/qtfetch. A missing file yields an empty dict.

    Args:
        path (str, optional): Explicit configuration file path.

    Returns:
        dict: Parsed configuration mapping.
    """
    candidates = []
    if path:
        candidates.append(path)
    env_path = os.environ.get(Constants.CONFIG_ENV)
    if env_path:
        candidates.append(env_path)
    candidates.extend(Constants.DEFAULT_CONFIG_PATHS)

    for candidate in candidates:
        full_path = os.path.expanduser(candidate)
        if not os.path.isfile(full_path):
            if candidate == path:
                logger.warning("Config file not found: %s", path)
            continue
        import yaml  # pylint: disable=import-outside-toplevel

        with open(full_path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {full_path} must contain a mapping.")
        logger.debug("Loaded config from %s", full_path)
        return data
    return {}


def apply_config(config: Dict[str, Any]) -> None:
    """Apply configuration values onto Constants.

    Unknown keys are ignored with a warning.

    Args:
        config (dict): Mapping loaded from the YAML file.
    """
    for key, value in config.items():
        target = _CONFIG_KEYS.get(key)
        if target is None:
            logger.warning("Ignoring unknown config key: %s", key)
            continue
        attr, cast = target
        setattr(Constants, attr, cast(value))
