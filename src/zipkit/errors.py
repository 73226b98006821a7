"""Typed errors for zipkit.

Single source of truth for exit codes lives here.

Policy:
- Errors are small and boring.
- Every error raised by the library extends `ZipKitError`.
- The CLI maps errors to stable exit codes (see EXIT_* constants).
- docs/exit_codes.md is generated from this module (scripts/gen_exit_codes_md.py).
"""

from __future__ import annotations

from dataclasses import dataclass

# -------------------------
# Exit codes (single source)
# -------------------------

EXIT_OK = 0
EXIT_USAGE = 2
EXIT_GENERIC = 10
EXIT_UNSUPPORTED = 11
EXIT_NOT_FOUND = 12
EXIT_CHECKSUM_MISMATCH = 13
EXIT_PATH_TRAVERSAL = 14
EXIT_IO = 15


@dataclass(frozen=True, slots=True)
class ExitCodeInfo:
    code: int
    name: str
    description: str


EXIT_CODES: tuple[ExitCodeInfo, ...] = (
    ExitCodeInfo(EXIT_OK, "OK", "Success"),
    ExitCodeInfo(EXIT_USAGE, "USAGE", "Usage/config error (invalid args, invalid entry name, invalid options)"),
    ExitCodeInfo(EXIT_GENERIC, "GENERIC", "Generic failure (malformed archive, unexpected error, etc.)"),
    ExitCodeInfo(EXIT_UNSUPPORTED, "UNSUPPORTED", "Unsupported ZIP feature (ZIP64, multi-volume, encryption, method)"),
    ExitCodeInfo(EXIT_NOT_FOUND, "NOT_FOUND", "Missing file, directory or archive entry"),
    ExitCodeInfo(EXIT_CHECKSUM_MISMATCH, "CHECKSUM_MISMATCH", "Integrity failure (CRC-32 mismatch, corrupt entry data)"),
    ExitCodeInfo(EXIT_PATH_TRAVERSAL, "PATH_TRAVERSAL", "Hostile entry name resolving outside the destination"),
    ExitCodeInfo(EXIT_IO, "IO", "Read/write failure on the filesystem"),
)

# For convenience (fast lookup)
_EXIT_CODE_BY_NAME: dict[str, int] = {e.name: e.code for e in EXIT_CODES}
_EXIT_CODE_BY_CODE: dict[int, ExitCodeInfo] = {e.code: e for e in EXIT_CODES}


def exit_code_info(code: int) -> ExitCodeInfo | None:
    return _EXIT_CODE_BY_CODE.get(int(code))


def exit_code_by_name(name: str) -> int | None:
    return _EXIT_CODE_BY_NAME.get(str(name).upper())


def render_exit_codes_markdown() -> str:
    """Render docs/exit_codes.md content."""
    lines: list[str] = []
    lines.append("# Exit codes\n")
    lines.append("> GENERATED FILE - do not edit manually.\n")
    lines.append("> Source of truth: `src/zipkit/errors.py` (EXIT_CODES).\n")
    lines.append("> Regenerate: `python scripts/gen_exit_codes_md.py`.\n\n")
    lines.append("These are the CLI exit codes you can rely on.\n\n")
    lines.append("| Code | Name | Meaning |\n")
    lines.append("|---:|---|---|\n")
    for e in sorted(EXIT_CODES, key=lambda x: x.code):
        lines.append(f"| {e.code} | `{e.name}` | {e.description} |\n")
    lines.append("\n## Notes\n")
    lines.append("- Library errors extend `ZipKitError` and carry an `exit_code`.\n")
    lines.append("- `--debug` re-raises errors to show full stack traces.\n")
    lines.append("- `-v/--verbose` enables debug logging on stderr.\n")
    return "".join(lines)


# ---------------
# Typed exceptions
# ---------------


class ZipKitError(Exception):
    """Base error for zipkit."""

    exit_code: int = EXIT_GENERIC


class UsageError(ZipKitError):
    exit_code = EXIT_USAGE


class NotFound(ZipKitError):
    exit_code = EXIT_NOT_FOUND


class NotAFile(ZipKitError):
    exit_code = EXIT_NOT_FOUND


class NotADirectory(ZipKitError):
    exit_code = EXIT_NOT_FOUND


class InvalidName(UsageError):
    pass


class AlreadyFinalized(UsageError):
    pass


class NotInMemory(UsageError):
    pass


class ArchiveClosed(UsageError):
    pass


class IoError(ZipKitError):
    exit_code = EXIT_IO


class MalformedArchive(ZipKitError):
    exit_code = EXIT_GENERIC


class UnsupportedFeature(ZipKitError):
    exit_code = EXIT_UNSUPPORTED


class ChecksumMismatch(ZipKitError):
    exit_code = EXIT_CHECKSUM_MISMATCH


class PathTraversal(ZipKitError):
    exit_code = EXIT_PATH_TRAVERSAL
