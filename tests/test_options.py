from __future__ import annotations

import json
from pathlib import Path

import pytest

from zipkit.options import (
    SPEC_ID_V1,
    ArchiveOptions,
    ArchiveOptionsError,
    load_archive_options,
    parse_archive_options,
)


def test_options_inline_minimal() -> None:
    opts = load_archive_options(json.dumps({"spec": SPEC_ID_V1}))
    assert opts == ArchiveOptions()
    assert opts.method == "deflate"
    assert opts.level == 6


def test_options_full_and_normalized() -> None:
    obj = {"spec": SPEC_ID_V1, "method": " STORE ", "level": 0, "comment": "nightly"}
    opts = load_archive_options(json.dumps(obj))
    assert opts == ArchiveOptions(method="store", level=0, comment="nightly")
    assert parse_archive_options(opts.to_dict()) == opts


@pytest.mark.parametrize(
    "obj",
    [
        {},
        {"spec": "zipkit.options.v0"},
        {"spec": SPEC_ID_V1, "wat": 1},
        {"spec": SPEC_ID_V1, "method": "bzip2"},
        {"spec": SPEC_ID_V1, "method": 8},
        {"spec": SPEC_ID_V1, "level": 10},
        {"spec": SPEC_ID_V1, "level": True},
        {"spec": SPEC_ID_V1, "level": "6"},
        {"spec": SPEC_ID_V1, "comment": 42},
        {"spec": SPEC_ID_V1, "comment": "x" * 70000},
    ],
)
def test_options_rejected(obj: dict) -> None:
    with pytest.raises(ArchiveOptionsError):
        parse_archive_options(obj)


@pytest.mark.parametrize("arg", ["", "   ", "{not json", "[1, 2]"])
def test_options_bad_inline(arg: str) -> None:
    with pytest.raises(ArchiveOptionsError):
        load_archive_options(arg)


def test_options_from_file(tmp_path: Path) -> None:
    p = tmp_path / "o.json"
    p.write_text(json.dumps({"spec": SPEC_ID_V1, "method": "store"}), encoding="utf-8")
    assert load_archive_options("@" + str(p)).method == "store"

    with pytest.raises(ArchiveOptionsError, match="file not found"):
        load_archive_options("@" + str(tmp_path / "missing.json"))
