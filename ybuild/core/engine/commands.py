"""
Build command parsing.

Commands are split like a POSIX shell would split them (quotes and
escapes) but are never handed to a shell. ``cd <dir>`` is the one
builtin: it moves the executor's working directory and runs nothing.
"""

from __future__ import annotations

import posixpath
import shlex
from dataclasses import dataclass

from ybuild.core.errors import ValidationError


@dataclass(frozen=True)
class Command:
    """A validated build command: either a directory change or an argv."""

    text: str
    chdir: str | None = None
    argv: tuple[str, ...] = ()

    @property
    def is_chdir(self) -> bool:
        return self.chdir is not None


def parse_command(text: str) -> Command:
    """Validate and parse one build command.

    Raises:
        ValidationError: Empty command, empty or absolute ``cd``, or
            unbalanced quoting.
    """
    stripped = text.strip()
    if stripped == "cd" or stripped.startswith(("cd ", "cd\t")):
        target = stripped[2:].strip()
        if not target:
            raise ValidationError(f"{text!r}: cd: empty directory")
        try:
            words = shlex.split(target)
        except ValueError as exc:
            raise ValidationError(f"{text!r}: {exc}") from exc
        if len(words) != 1 or not words[0]:
            raise ValidationError(f"{text!r}: cd: want exactly one directory")
        if _is_absolute(words[0]):
            raise ValidationError(f"{text!r}: cd: absolute paths not supported")
        return Command(text=text, chdir=words[0])

    try:
        argv = shlex.split(text)
    except ValueError as exc:
        raise ValidationError(f"{text!r}: {exc}") from exc
    if not argv:
        raise ValidationError("empty build command")
    return Command(text=text, argv=tuple(argv))


def parse_commands(commands: list[str] | tuple[str, ...], root: str = "") -> list[Command]:
    """Validate every command before any of them runs.

    The working directory is followed through each ``cd`` starting at
    *root*; a sequence that would leave the package is rejected.
    """
    parsed = [parse_command(c) for c in commands]
    work_dir = root
    for command in parsed:
        if command.is_chdir:
            work_dir = posixpath.normpath(posixpath.join(work_dir, command.chdir))
            if _escapes(work_dir):
                raise ValidationError(f"{command.text!r}: cd: leaves the package directory")
    return parsed


def validate_root(root: str) -> str:
    """Check a target ``root`` is relative, inside the package, and return it cleaned."""
    if not root:
        return ""
    if _is_absolute(root):
        raise ValidationError(f"root {root!r}: absolute paths not supported")
    cleaned = posixpath.normpath(root)
    if _escapes(cleaned):
        raise ValidationError(f"root {root!r}: leaves the package directory")
    return cleaned


def _is_absolute(path: str) -> bool:
    return posixpath.isabs(path) or path.startswith("\\")


def _escapes(path: str) -> bool:
    return path == ".." or path.startswith("../")
