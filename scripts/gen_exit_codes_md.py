#!/usr/bin/env python3
"""Write docs/exit_codes.md from the EXIT_CODES table in src/zipkit/errors.py.

  gen_exit_codes_md.py           rewrite the doc
  gen_exit_codes_md.py --check   exit 1 if the doc is stale (CI)
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

REPO = Path(__file__).resolve().parents[1]
DOC = REPO / "docs" / "exit_codes.md"


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(prog="gen_exit_codes_md")
    p.add_argument("--check", action="store_true", help="Only compare, do not write")
    ns = p.parse_args(argv)

    sys.path.insert(0, str(REPO / "src"))
    from zipkit.errors import render_exit_codes_markdown  # noqa: E402

    want = render_exit_codes_markdown()
    have = DOC.read_text(encoding="utf-8") if DOC.is_file() else None

    if ns.check:
        if have != want:
            print(f"[zipkit] stale: {DOC} (run scripts/gen_exit_codes_md.py)", file=sys.stderr)
            return 1
        print(f"[zipkit] up to date: {DOC}")
        return 0

    if have == want:
        print(f"[zipkit] unchanged: {DOC}")
        return 0
    DOC.parent.mkdir(parents=True, exist_ok=True)
    DOC.write_text(want, encoding="utf-8")
    print(f"[zipkit] wrote {DOC}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
