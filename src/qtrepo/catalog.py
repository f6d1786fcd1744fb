"""Updates.xml catalog parsing and retrieval."""
from __future__ import annotations

import logging
import re
import threading
import xml.etree.ElementTree as ET
from typing import Dict, List, Optional, Tuple

from constants import Constants
from common import http_client
from common.cancellation import CancelToken
from common.errors import MalformedIndex
from common.http_client import MirrorUrl
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer
from qtrepo.models import Archive, Package, QtUpdate

logger = logging.getLogger(__name__)

_IDENTIFIER_SEPARATORS = re.compile(r"[,;]")


def _required_text(element: ET.Element, name: str) -> str:
    child = element.find(name)
    if child is None or child.text is None or not child.text.strip():
        raise MalformedIndex(f'Element "{name}" not found.')
    return child.text.strip()


def target_directory_components(argument: str) -> Tuple[str, ...]:
    """Split an Extract operation target argument into path components.

    An empty argument means the archive lands at the output root. Anything
    else must be rooted at the @TargetDir@ placeholder.
    """
    if not argument or not argument.strip():
        return ()
    components = argument.strip().split("/")
    if components[0] != Constants.TARGET_DIR_PLACEHOLDER:
        raise MalformedIndex("Extract operation must be rooted at target directory.")
    return tuple(c for c in components[1:] if c)


def _extract_arguments(package: ET.Element) -> Dict[str, str]:
    """Map archive identifier to Extract target argument."""
    result: Dict[str, str] = {}
    operations = package.find("Operations")
    if operations is None:
        return result
    for operation in operations.findall("Operation"):
        if operation.get("name") != "Extract":
            continue
        args = [(a.text or "").strip() for a in operation.findall("Argument")]
        if len(args) != 2:
            raise MalformedIndex("Extract operation must have exactly two arguments.")
        result[args[1]] = args[0]
    return result


def _archive_identifiers(package: ET.Element) -> List[str]:
    node = package.find("DownloadableArchives")
    if node is None or not node.text:
        return []
    return [i.strip() for i in _IDENTIFIER_SEPARATORS.split(node.text) if i.strip()]


def parse_update(xml_text: str) -> QtUpdate:
    """Parse an Updates.xml document.

    Raises:
        MalformedIndex: On unparseable XML, a wrong root element, missing
            Name/Version, or an Extract target outside @TargetDir@.
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as exc:
        raise MalformedIndex(f"Catalog is not valid XML: {exc}") from exc
    if root.tag != "Updates":
        raise MalformedIndex(f'Unexpected root element "{root.tag}".')

    packages = []
    for element in root.findall("PackageUpdate"):
        name = _required_text(element, "Name")
        full_version = _required_text(element, "Version")
        targets = _extract_arguments(element)
        archives = tuple(
            Archive(
                identifier=identifier,
                file_name=full_version + identifier,
                target_directory_components=target_directory_components(
                    targets.get(identifier, "")
                ),
            )
            for identifier in _archive_identifiers(element)
        )
        packages.append(Package(name=name, archives=archives))
    return QtUpdate(packages=tuple(packages))


def fetch_update(
    update_dir_url: MirrorUrl,
    no_hash: bool = False,
    *,
    cancel: Optional[CancelToken] = None,
) -> QtUpdate:
    """Download, verify and parse ``<update_dir_url>Updates.xml``."""
    url = update_dir_url.join(Constants.UPDATES_FILE)
    with Timer() as t:
        expected_hash = None if no_hash else http_client.fetch_published_hash(url, cancel=cancel)
        try:
            text = http_client.fetch_verified_text(
                str(url), expected_hash, verify=not no_hash, cancel=cancel
            )
        except UnicodeDecodeError as exc:
            raise MalformedIndex(f"Catalog is not valid UTF-8: {exc}") from exc
        update = parse_update(text)
    if is_debug_enabled(logger):
        logger.debug(
            "Catalog parsed",
            extra=extra_context(
                event="parse",
                component="catalog",
                action="fetch_update",
                target=safe_url(str(url)),
                packages=len(update.packages),
                duration_ms=t.duration_ms(),
            ),
        )
    return update


class UpdateCache:
    """Per-run memo of parsed catalogs keyed by location."""

    def __init__(self, no_hash: bool = False, cancel: Optional[CancelToken] = None) -> None:
        self._no_hash = no_hash
        self._cancel = cancel
        self._cache: Dict[str, QtUpdate] = {}
        self._lock = threading.Lock()

    def get(self, update_dir_url: MirrorUrl) -> QtUpdate:
        key = str(update_dir_url)
        with self._lock:
            cached = self._cache.get(key)
        if cached is not None:
            return cached
        update = fetch_update(update_dir_url, self._no_hash, cancel=self._cancel)
        with self._lock:
            return self._cache.setdefault(key, update)
