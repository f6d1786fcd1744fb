"""Shared HTTP helpers used by the catalog and installer layers.

Encapsulates the pooled session, status/transport error handling, published
hash lookup and streaming SHA-256 verification so callers avoid duplicating
try/except blocks. This module is dependency-light and can be imported by
qtrepo/* and installer/* without cycles.
"""
from __future__ import annotations

import hashlib
import hmac
import io
import logging
import re
import threading
from dataclasses import dataclass
from typing import Any, BinaryIO, Optional

import requests
from requests.adapters import HTTPAdapter

from constants import Constants
from common.cancellation import CancelToken, check
from common.errors import HashMismatch, HttpError, MalformedHash
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer

logger = logging.getLogger(__name__)

SHA256_HEX_LENGTH = 64
_SHA256_HEX = re.compile(r"[0-9a-fA-F]{64}")

_session: Optional[requests.Session] = None
_session_lock = threading.Lock()


@dataclass(frozen=True)
class MirrorUrl:
    """A remote location split into mirror base and repository path.

    Archive bodies may be served from any mirror; the path part is what
    gets re-anchored on the trusted mirror for hash sidecars.
    """

    base: str
    path: str

    def __str__(self) -> str:
        return f"{self.base.rstrip('/')}/{self.path.lstrip('/')}"

    def join(self, suffix: str) -> "MirrorUrl":
        return MirrorUrl(self.base, self.path + suffix)

    def on_mirror(self, base: str) -> "MirrorUrl":
        return MirrorUrl(base, self.path)


def _get_session() -> requests.Session:
    """Return the process-wide session, creating it on first use."""
    global _session  # pylint: disable=global-statement
    with _session_lock:
        if _session is None:
            pool_size = max(Constants.DOWNLOAD_CONCURRENCY, 1) + 2
            session = requests.Session()
            adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size)
            session.mount("https://", adapter)
            session.mount("http://", adapter)
            _session = session
        return _session


def reset_session() -> None:
    """Close and forget the pooled session."""
    global _session  # pylint: disable=global-statement
    with _session_lock:
        if _session is not None:
            _session.close()
        _session = None


def safe_get(
    url: str,
    *,
    context: str,
    stream: bool = False,
    cancel: Optional[CancelToken] = None,
    **kwargs: Any,
) -> requests.Response:
    """Perform a GET request with consistent error handling and DEBUG traces.

    Args:
        url: Target URL.
        context: Human-readable source tag for logs (e.g., "catalog").
        stream: Defer body download so it can be consumed in chunks.
        cancel: Optional cancellation token checked before the request.
        **kwargs: Passed through to requests.Session.get.

    Returns:
        requests.Response: A response with a 2xx status.

    Raises:
        HttpError: On a non-2xx status or a transport failure.
    """
    check(cancel)
    safe_target = safe_url(url)
    with Timer() as t:
        if is_debug_enabled(logger):
            logger.debug(
                "HTTP request",
                extra=extra_context(
                    event="http_request",
                    component="http_client",
                    action="GET",
                    target=safe_target,
                    context=context,
                ),
            )
        try:
            res = _get_session().get(
                url, timeout=Constants.REQUEST_TIMEOUT, stream=stream, **kwargs
            )
        except requests.Timeout as exc:
            logger.error(
                "%s request timed out after %s seconds",
                context,
                Constants.REQUEST_TIMEOUT,
            )
            raise HttpError(safe_target, reason="timed out") from exc
        except requests.RequestException as exc:  # includes ConnectionError
            logger.error("%s connection error: %s", context, exc)
            raise HttpError(safe_target, reason=str(exc)) from exc

        if not 200 <= res.status_code < 300:
            res.close()
            if is_debug_enabled(logger):
                logger.debug(
                    "HTTP non-2xx",
                    extra=extra_context(
                        event="http_response",
                        component="http_client",
                        action="GET",
                        outcome="non_2xx",
                        status_code=res.status_code,
                        duration_ms=t.duration_ms(),
                        target=safe_target,
                        context=context,
                    ),
                )
            raise HttpError(safe_target, status_code=res.status_code)

        if is_debug_enabled(logger):
            logger.debug(
                "HTTP response ok",
                extra=extra_context(
                    event="http_response",
                    component="http_client",
                    action="GET",
                    outcome="success",
                    status_code=res.status_code,
                    duration_ms=t.duration_ms(),
                    target=safe_target,
                    context=context,
                ),
            )
        return res


def fetch_text(url: str, *, cancel: Optional[CancelToken] = None) -> str:
    """Fetch a resource and return its body decoded as UTF-8."""
    res = safe_get(url, context="text", cancel=cancel)
    try:
        return res.content.decode("utf-8")
    finally:
        res.close()


def fetch_to_sink(url: str, sink: BinaryIO, *, cancel: Optional[CancelToken] = None) -> None:
    """Stream a resource into a writable binary sink."""
    res = safe_get(url, context="download", stream=True, cancel=cancel)
    try:
        for chunk in res.iter_content(chunk_size=Constants.FILE_BUFFER_SIZE):
            check(cancel)
            if chunk:
                sink.write(chunk)
    finally:
        res.close()


def parse_published_hash(content: str) -> bytes:
    """Parse the body of a .sha256 sidecar: ``<64 hex chars><space><filename>``.

    Raises:
        MalformedHash: If the content does not have that shape.
    """
    if (
        len(content) <= SHA256_HEX_LENGTH
        or content[SHA256_HEX_LENGTH] != " "
        or not _SHA256_HEX.fullmatch(content[:SHA256_HEX_LENGTH])
    ):
        raise MalformedHash("Published hash is formatted incorrectly.")
    return bytes.fromhex(content[:SHA256_HEX_LENGTH])


def fetch_published_hash(url: MirrorUrl, *, cancel: Optional[CancelToken] = None) -> bytes:
    """Fetch the published SHA-256 digest for a remote file.

    The sidecar is always read from the trusted mirror, whatever mirror the
    file itself is served from.

    Returns:
        bytes: The 32-byte digest.
    """
    hash_url = url.on_mirror(Constants.TRUSTED_MIRROR).join(Constants.HASH_SUFFIX)
    try:
        content = fetch_text(str(hash_url), cancel=cancel)
    except UnicodeDecodeError as exc:
        raise MalformedHash(f"Published hash is not valid UTF-8: {safe_url(str(hash_url))}") from exc
    return parse_published_hash(content)


class _HashingWriter:
    """Write-through wrapper feeding every chunk to a running digest."""

    def __init__(self, sink: BinaryIO) -> None:
        self._sink = sink
        self.digest = hashlib.sha256()

    def write(self, data: bytes) -> int:
        self.digest.update(data)
        return self._sink.write(data)


def fetch_verified(
    url: str,
    sink: BinaryIO,
    expected_hash: Optional[bytes] = None,
    *,
    verify: bool = True,
    cancel: Optional[CancelToken] = None,
) -> None:
    """Stream a resource into ``sink`` and check its SHA-256 digest.

    The comparison happens only after the whole body has been written.
    Bytes already written to ``sink`` stay there on mismatch; callers own
    the cleanup of whatever the sink points at.

    Args:
        url: Remote location.
        sink: Writable binary stream.
        expected_hash: 32-byte digest; required when ``verify`` is True.
        verify: Skip the digest comparison entirely when False.
        cancel: Optional cancellation token.

    Raises:
        HashMismatch: If the computed digest differs from ``expected_hash``.
    """
    if verify and expected_hash is None:
        raise ValueError("expected_hash is required when verify is enabled")
    writer = _HashingWriter(sink)
    fetch_to_sink(url, writer, cancel=cancel)  # type: ignore[arg-type]
    if not verify:
        return
    actual = writer.digest.digest()
    if not hmac.compare_digest(actual, expected_hash):  # type: ignore[arg-type]
        logger.error("Hash mismatch for %s", safe_url(url))
        raise HashMismatch(f"Hash of downloaded file is incorrect: {safe_url(url)}")


def fetch_verified_text(
    url: str,
    expected_hash: Optional[bytes] = None,
    *,
    verify: bool = True,
    cancel: Optional[CancelToken] = None,
) -> str:
    """Fetch a verified resource into memory and decode it as UTF-8."""
    buffer = io.BytesIO()
    fetch_verified(url, buffer, expected_hash, verify=verify, cancel=cancel)
    return buffer.getvalue().decode("utf-8")
