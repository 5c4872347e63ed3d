"""
Archive extractor — unpack tar and zip files with path-traversal guards.

Format is inferred from the file name. Every entry is checked before it
is written: its normalized path, and the real path of its parent
directory, must stay inside the destination. File modes (the executable
bit in particular) are preserved; symlinks are recreated verbatim.
"""

from __future__ import annotations

import logging
import lzma
import os
import shutil
import stat
import tarfile
import zipfile
import zlib
from pathlib import Path

from ybuild.core.cancel import CancelToken
from ybuild.core.errors import ExtractError

logger = logging.getLogger(__name__)

_TAR_MODES = {
    ".tar": "r:",
    ".tar.gz": "r:gz",
    ".tgz": "r:gz",
    ".tar.xz": "r:xz",
    ".txz": "r:xz",
    ".tar.bz2": "r:bz2",
    ".tbz2": "r:bz2",
}
_ZIP_SUFFIXES = (".zip", ".jar")

_READ_ERRORS = (OSError, EOFError, tarfile.TarError, zipfile.BadZipFile, lzma.LZMAError, zlib.error)


def archive_format(name: str) -> str:
    """Return ``"zip"`` or a ``tarfile`` open mode for *name*.

    Raises:
        ExtractError: The suffix is not a supported archive type.
    """
    lower = name.lower()
    if lower.endswith(_ZIP_SUFFIXES):
        return "zip"
    for suffix in sorted(_TAR_MODES, key=len, reverse=True):
        if lower.endswith(suffix):
            return _TAR_MODES[suffix]
    raise ExtractError(f"{name}: unsupported archive format")


def extract(
    archive: str | Path,
    dest: str | Path,
    *,
    name: str | None = None,
    strip_components: int = 0,
    cancel: CancelToken | None = None,
) -> None:
    """Unpack *archive* into *dest*, creating *dest* if needed.

    Args:
        archive: Path of the archive file.
        dest: Destination directory.
        name: File name to infer the format from, when *archive* itself
            has a cache name without the original suffix.
        strip_components: Leading path components to drop from every entry,
            like ``tar --strip-components``.
        cancel: Checked between entries.

    Raises:
        ExtractError: Unsupported format, corrupt archive, I/O failure, or
            an entry that would land outside *dest*.
    """
    archive = Path(archive)
    fmt = archive_format(name or archive.name)
    dest = Path(dest)
    try:
        dest.mkdir(parents=True, exist_ok=True)
        root = os.path.realpath(dest)
        if fmt == "zip":
            _extract_zip(archive, root, strip_components, cancel)
        else:
            _extract_tar(archive, fmt, root, strip_components, cancel)
    except ExtractError:
        raise
    except _READ_ERRORS as exc:
        raise ExtractError(f"extract {archive.name}: {exc}") from exc


def _member_path(name: str, strip: int) -> str | None:
    parts = [p for p in name.replace("\\", "/").split("/") if p not in ("", ".")]
    if len(parts) <= strip:
        return None
    return "/".join(parts[strip:])


def _target(root: str, rel: str, entry: str) -> str:
    if rel.startswith("/") or os.path.isabs(rel):
        raise ExtractError(f"{entry}: absolute path in archive")
    target = os.path.normpath(os.path.join(root, rel))
    if target != root and not target.startswith(root + os.sep):
        raise ExtractError(f"{entry}: path escapes destination directory")
    parent = os.path.realpath(os.path.dirname(target))
    if parent != root and not parent.startswith(root + os.sep):
        raise ExtractError(f"{entry}: path escapes destination directory through a symlink")
    return target


def _make_dir(target: str, mode: int | None = None) -> None:
    # A symlink at a directory entry is replaced, never followed.
    if os.path.islink(target):
        os.unlink(target)
    os.makedirs(target, exist_ok=True)
    if mode is not None:
        os.chmod(target, mode)


def _prepare(target: str) -> None:
    os.makedirs(os.path.dirname(target), exist_ok=True)
    if os.path.lexists(target) and not os.path.isdir(target):
        os.unlink(target)


def _write(src, target: str, mode: int) -> None:
    _prepare(target)
    with open(target, "wb") as out:
        shutil.copyfileobj(src, out)
    if mode:
        os.chmod(target, mode & 0o7777)


def _extract_tar(
    archive: Path, mode: str, root: str, strip: int, cancel: CancelToken | None
) -> None:
    with tarfile.open(archive, mode) as tar:
        for member in tar:
            if cancel is not None:
                cancel.check()
            rel = _member_path(member.name, strip)
            if rel is None:
                continue
            target = _target(root, rel, member.name)
            if member.isdir():
                _make_dir(target, (member.mode & 0o7777) | 0o700)
            elif member.issym():
                _prepare(target)
                os.symlink(member.linkname, target)
            elif member.islnk():
                link_rel = _member_path(member.linkname, strip)
                if link_rel is None:
                    raise ExtractError(f"{member.name}: hard link target stripped away")
                source = _target(root, link_rel, member.linkname)
                _prepare(target)
                try:
                    os.link(source, target)
                except OSError:
                    shutil.copy2(source, target)
            elif member.isfile():
                src = tar.extractfile(member)
                if src is None:
                    raise ExtractError(f"{member.name}: unreadable entry")
                with src:
                    _write(src, target, member.mode)
            else:
                logger.debug("Skipping special file %s", member.name)


def _extract_zip(archive: Path, root: str, strip: int, cancel: CancelToken | None) -> None:
    with zipfile.ZipFile(archive) as zf:
        for info in zf.infolist():
            if cancel is not None:
                cancel.check()
            rel = _member_path(info.filename, strip)
            if rel is None:
                continue
            target = _target(root, rel, info.filename)
            unix_mode = info.external_attr >> 16
            if info.is_dir():
                _make_dir(target)
            elif stat.S_ISLNK(unix_mode):
                _prepare(target)
                os.symlink(zf.read(info).decode("utf-8"), target)
            else:
                with zf.open(info) as src:
                    _write(src, target, unix_mode & 0o7777)
