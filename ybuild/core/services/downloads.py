"""
Download cache — remote archives as local files, fetched at most once.

Each URL maps to one file under ``<cache-root>/downloads`` named after
the URL with every character outside ``[A-Za-z0-9.]`` removed. A cached
file is reused only after a HEAD request confirms it still has the
server's ``Content-Length``. New content is written to a temp file beside
the final one and renamed into place, so a reader never sees a partial
download and concurrent fetches of the same URL are harmless.
"""

from __future__ import annotations

import hashlib
import http.client
import logging
import os
import re
import tempfile
import urllib.error
import urllib.request
from pathlib import Path

from ybuild import __version__
from ybuild.core.cancel import CancelToken
from ybuild.core.errors import NetworkError, NotFoundError

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9.]+")
_MAX_NAME = 200
_CHUNK = 256 * 1024
_NOT_FOUND = (404, 410)


def cache_filename(url: str) -> str:
    """Deterministic file name for *url*."""
    name = _UNSAFE.sub("", url)
    if len(name) > _MAX_NAME:
        digest = hashlib.sha256(url.encode("utf-8")).hexdigest()[:16]
        name = f"{name[:_MAX_NAME - 17]}.{digest}"
    return name


class Downloader:
    """HTTP(S) download cache rooted at *cache_dir*."""

    def __init__(self, cache_dir: str | Path, *, timeout: float = 60.0):
        self.cache_dir = Path(cache_dir)
        self.timeout = timeout

    def cache_path(self, url: str) -> Path:
        return self.cache_dir / cache_filename(url)

    def download(self, url: str, cancel: CancelToken | None = None) -> Path:
        """Return the path of a local file holding the bytes at *url*.

        Raises:
            NotFoundError: The server answered 404 or 410.
            NetworkError: Any other transport or HTTP failure.
            CancelError: *cancel* fired during the transfer.
        """
        if cancel is not None:
            cancel.check()
        path = self.cache_path(url)
        if path.is_file() and self._still_valid(url, path):
            logger.debug("Download cache hit: %s", url)
            return path
        logger.info("Downloading %s", url)
        self._fetch(url, path, cancel)
        return path

    def _request(self, url: str, method: str) -> urllib.request.Request:
        return urllib.request.Request(url, method=method, headers={"User-Agent": f"yb/{__version__}"})

    def _still_valid(self, url: str, path: Path) -> bool:
        try:
            with urllib.request.urlopen(self._request(url, "HEAD"), timeout=self.timeout) as resp:
                status = resp.status
                length = resp.headers.get("Content-Length")
        except urllib.error.HTTPError as exc:
            if exc.code in _NOT_FOUND:
                raise NotFoundError(url, exc.code) from exc
            logger.debug("HEAD %s: HTTP %d, re-downloading", url, exc.code)
            return False
        except (urllib.error.URLError, OSError) as exc:
            raise NetworkError(f"HEAD {url}: {exc}") from exc

        if status != 200 or length is None:
            return False
        try:
            return int(length) == path.stat().st_size
        except ValueError:
            return False

    def _fetch(self, url: str, path: Path, cancel: CancelToken | None) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name[:64]}.", suffix=".part")
        tmp = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as out:
                try:
                    resp = urllib.request.urlopen(self._request(url, "GET"), timeout=self.timeout)
                except urllib.error.HTTPError as exc:
                    if exc.code in _NOT_FOUND:
                        raise NotFoundError(url, exc.code) from exc
                    raise NetworkError(f"GET {url}: HTTP {exc.code} {exc.reason}") from exc
                except (urllib.error.URLError, OSError) as exc:
                    raise NetworkError(f"GET {url}: {exc}") from exc

                with resp:
                    expected = resp.headers.get("Content-Length")
                    written = 0
                    while True:
                        if cancel is not None:
                            cancel.check()
                        try:
                            chunk = resp.read(_CHUNK)
                        except (OSError, http.client.HTTPException) as exc:
                            raise NetworkError(f"GET {url}: {exc}") from exc
                        if not chunk:
                            break
                        out.write(chunk)
                        written += len(chunk)

                if expected is not None and expected.isdigit() and int(expected) != written:
                    raise NetworkError(f"GET {url}: got {written} bytes, expected {expected}")
            os.replace(tmp, path)
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise
        logger.debug("Cached %s as %s", url, path.name)
