"""
Data directories — where ybuild keeps state between runs.

Layout under the cache root:

    downloads/<sanitized-url>
    tools/<tool>/<version>/...
    build-home/<pkg-hash>/<target>/<os>-<arch>/...

The root is ``$YB_CACHE_DIR`` if set, else the platform cache directory
(``$XDG_CACHE_HOME``/``~/.cache`` on Linux, ``~/Library/Caches`` on macOS,
``%LOCALAPPDATA%`` on Windows) plus ``yb``.
"""

from __future__ import annotations

import hashlib
import logging
import os
import sys
from pathlib import Path

from ybuild.adapters.base import Descriptor
from ybuild.core.services.files import remove_tree

logger = logging.getLogger(__name__)

ENV_CACHE_DIR = "YB_CACHE_DIR"
PACKAGE_HASH_LENGTH = 12


def default_cache_root(environ: dict[str, str] | None = None) -> Path:
    """Resolve the cache root from the environment and platform."""
    env = os.environ if environ is None else environ
    override = env.get(ENV_CACHE_DIR, "").strip()
    if override:
        return Path(override).expanduser()

    if sys.platform == "darwin":
        base = Path.home() / "Library" / "Caches"
    elif sys.platform == "win32" and env.get("LOCALAPPDATA"):
        base = Path(env["LOCALAPPDATA"])
    elif env.get("XDG_CACHE_HOME"):
        base = Path(env["XDG_CACHE_HOME"])
    else:
        base = Path.home() / ".cache"
    return base / "yb"


def package_hash(package_dir: str | Path) -> str:
    """Short, stable digest of the package's absolute path."""
    absolute = os.path.abspath(package_dir)
    return hashlib.sha256(absolute.encode("utf-8")).hexdigest()[:PACKAGE_HASH_LENGTH]


class DataDirs:
    """Accessor for the directories under one cache root.

    Directory-returning methods create the directory on first use.
    """

    def __init__(self, root: str | Path | None = None):
        self.root = Path(root) if root is not None else default_cache_root()

    def __repr__(self) -> str:
        return f"DataDirs(root={str(self.root)!r})"

    def downloads(self) -> Path:
        return self._ensure(self.root / "downloads")

    def tools(self) -> Path:
        return self._ensure(self.root / "tools")

    def build_home_root(self, package_dir: str | Path) -> Path:
        """Parent of every target HOME for *package_dir* (not created)."""
        return self.root / "build-home" / package_hash(package_dir)

    def target_home_root(self, package_dir: str | Path, target: str) -> Path:
        return self.build_home_root(package_dir) / _safe_component(target)

    def build_home(self, package_dir: str | Path, target: str, descriptor: Descriptor) -> Path:
        """HOME for one target of one package on one OS/architecture."""
        return self._ensure(self.target_home_root(package_dir, target) / str(descriptor))

    def clean(self, package_dir: str | Path, targets: list[str] | None = None) -> list[Path]:
        """Remove build homes; all of the package's when *targets* is empty.

        Returns:
            The directories that existed and were removed.
        """
        if targets:
            candidates = [self.target_home_root(package_dir, t) for t in targets]
        else:
            candidates = [self.build_home_root(package_dir)]
        removed = []
        for path in candidates:
            if remove_tree(path):
                logger.info("Removed %s", path)
                removed.append(path)
        return removed

    @staticmethod
    def _ensure(path: Path) -> Path:
        path.mkdir(parents=True, exist_ok=True)
        return path


def _safe_component(name: str) -> str:
    # Target names become a single path component.
    cleaned = name.replace("/", "_").replace("\\", "_").strip()
    if cleaned in ("", ".", ".."):
        return "_" + cleaned.strip(".") + "_"
    return cleaned
