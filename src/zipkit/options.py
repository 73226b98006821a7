"""Archive creation options (v1).

Goal: make archive builds reproducible and portable (CLI, scripts, CI).

This module intentionally stays *small* and strict:
  - JSON only
  - explicit schema id
  - unknown keys are rejected
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from zipkit.core.codec import NAME_TO_METHOD

SPEC_ID_V1 = "zipkit.options.v1"

_ALLOWED_KEYS = {"spec", "method", "level", "comment"}
_MAX_COMMENT_LEN = 0xFFFF


class ArchiveOptionsError(ValueError):
    pass


@dataclass(frozen=True)
class ArchiveOptions:
    method: str = "deflate"
    level: int = 6
    comment: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"spec": SPEC_ID_V1, "method": self.method, "level": self.level, "comment": self.comment}


def _load_json_arg(options_arg: str) -> dict[str, Any]:
    s = options_arg.strip()
    if not s:
        raise ArchiveOptionsError("options: empty argument")

    if s.startswith("@"):
        p = Path(s[1:]).expanduser()
        if not p.exists() or not p.is_file():
            raise ArchiveOptionsError(f"options: file not found: {p}")
        raw = p.read_text(encoding="utf-8")
        try:
            obj = json.loads(raw)
        except Exception as e:
            raise ArchiveOptionsError(f"options: invalid JSON in {p}: {e}") from e
        if not isinstance(obj, dict):
            raise ArchiveOptionsError(f"options: the JSON in {p} must be an object")
        return obj

    try:
        obj = json.loads(s)
    except Exception as e:
        raise ArchiveOptionsError(f"options: invalid inline JSON: {e}") from e
    if not isinstance(obj, dict):
        raise ArchiveOptionsError("options: inline JSON must be an object")
    return obj


def parse_archive_options(obj: dict[str, Any]) -> ArchiveOptions:
    if obj.get("spec") != SPEC_ID_V1:
        raise ArchiveOptionsError(f"options: 'spec' must be {SPEC_ID_V1!r}")

    unknown = sorted(set(obj) - _ALLOWED_KEYS)
    if unknown:
        raise ArchiveOptionsError(f"options: unknown keys: {', '.join(unknown)}")

    method = obj.get("method", "deflate")
    if not isinstance(method, str) or method.strip().lower() not in NAME_TO_METHOD:
        allowed = ", ".join(sorted(NAME_TO_METHOD))
        raise ArchiveOptionsError(f"options: 'method' must be one of: {allowed}")

    level = obj.get("level", 6)
    if isinstance(level, bool) or not isinstance(level, int) or not (0 <= level <= 9):
        raise ArchiveOptionsError("options: 'level' must be an int in 0..9")

    comment = obj.get("comment", "")
    if not isinstance(comment, str):
        raise ArchiveOptionsError("options: 'comment' must be a string")
    if len(comment.encode("utf-8")) > _MAX_COMMENT_LEN:
        raise ArchiveOptionsError(f"options: 'comment' longer than {_MAX_COMMENT_LEN} bytes")

    return ArchiveOptions(method=method.strip().lower(), level=level, comment=comment)


def load_archive_options(options_arg: str) -> ArchiveOptions:
    """Load options from inline JSON or '@file.json'."""
    return parse_archive_options(_load_json_arg(options_arg))
