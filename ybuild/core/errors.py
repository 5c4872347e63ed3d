"""
Error kinds raised across ybuild.

Every component raises one of these (usually ``raise X(...) from exc`` so the
underlying cause stays on the chain). The CLI catches ``YbError`` once at the
top and maps the kind to an exit code.
"""

from __future__ import annotations


class YbError(Exception):
    """Base class for all ybuild failures."""


class ManifestError(YbError):
    """The manifest could not be parsed or failed validation."""


class ValidationError(YbError):
    """A build command was rejected before anything ran."""


class ExpansionError(ManifestError):
    """An environment template could not be expanded."""


class NetworkError(YbError):
    """A transport failure talking to a remote server."""


class NotFoundError(YbError):
    """The server answered 404 or 410 for a download."""

    def __init__(self, url: str, status: int) -> None:
        super().__init__(f"{url}: not found (HTTP {status})")
        self.url = url
        self.status = status


class ExtractError(YbError):
    """An archive could not be unpacked."""


class ResourceError(YbError):
    """An auxiliary container could not be pulled, created, started or reached."""


class BuildpackError(YbError):
    """A toolchain could not be installed or set up."""


class RunError(YbError):
    """A command exited with a non-zero status."""

    def __init__(self, argv: list[str], exit_code: int, message: str = "") -> None:
        detail = message or f"exit status {exit_code}"
        super().__init__(f"{argv[0] if argv else '<empty>'}: {detail}")
        self.argv = list(argv)
        self.exit_code = exit_code


class CancelError(YbError):
    """The operation was cancelled before it finished."""


def error_chain(err: BaseException) -> list[str]:
    """Return the messages of *err* and every exception it was raised from."""
    chain: list[str] = []
    seen: set[int] = set()
    current: BaseException | None = err
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        chain.append(str(current) or type(current).__name__)
        current = current.__cause__
    return chain
