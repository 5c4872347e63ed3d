"""Filesystem helpers shared by the cache, the extractor and ``clean``."""

from __future__ import annotations

import os
import shutil
from pathlib import Path


def remove_tree(path: str | Path) -> bool:
    """Delete *path* recursively, including read-only install trees.

    Returns:
        True if something was removed.
    """
    path = Path(path)
    if path.is_symlink() or path.is_file():
        path.unlink()
        return True
    if not path.exists():
        return False
    # Read-only trees must regain owner write before rmtree can unlink.
    for dirpath, dirnames, _ in os.walk(path):
        os.chmod(dirpath, os.stat(dirpath).st_mode | 0o700)
        for name in dirnames:
            p = os.path.join(dirpath, name)
            if not os.path.islink(p):
                os.chmod(p, os.stat(p).st_mode | 0o700)
    shutil.rmtree(path)
    return True
