"""zipkit CLI.

This is the stable CLI entrypoint (console-script: ``zipkit``).

Errors are printed on stderr with a ``[zipkit]`` prefix and mapped to the exit
codes in ``zipkit.errors``; ``--debug`` re-raises them instead.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from zipkit.errors import EXIT_GENERIC, EXIT_USAGE, ZipKitError
from zipkit.options import (
    ArchiveOptions,
    ArchiveOptionsError,
    load_archive_options,
    parse_archive_options,
)


def _add_common_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--debug", action="store_true", help="Show stack traces on errors")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="[zipkit] %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _resolve_options(
    options_arg: str | None, method: str | None, level: int | None, comment: str | None
) -> ArchiveOptions:
    # precedence: CLI flags > options document > defaults
    base = load_archive_options(options_arg) if options_arg else ArchiveOptions()
    merged = base.to_dict()
    if method is not None:
        merged["method"] = method
    if level is not None:
        merged["level"] = int(level)
    if comment is not None:
        merged["comment"] = comment
    return parse_archive_options(merged)


def _cmd_create(output: Path, inputs: list[Path], opts: ArchiveOptions) -> int:
    from zipkit.zip_writer import Zip

    with Zip.create(output, method=opts.method, level=opts.level) as z:
        for inp in inputs:
            if inp.is_dir():
                z.add_all_from(inp)
            else:
                z.add_from_file(inp)
        if opts.comment:
            z.set_comment(opts.comment)
        z.finalize()
        n = len(z.entries())
    print(f"OK {n} entries -> {output}")
    return 0


def _cmd_list(archive: Path, *, long: bool) -> int:
    from zipkit.core.codec import method_name
    from zipkit.zip_reader import Unzip

    with Unzip.open(archive) as u:
        for name in u.get_entries():
            if not long:
                print(name)
                continue
            e = u.info(name)
            print(
                f"{e.uncompressed_size:>12} {e.compressed_size:>12} "
                f"{method_name(e.method):<8} {e.crc32:08x}  {name}"
            )
    return 0


def _cmd_cat(archive: Path, entry: str) -> int:
    from zipkit.zip_reader import Unzip

    with Unzip.open(archive) as u:
        data = u.extract(entry)
    sys.stdout.buffer.write(data)
    sys.stdout.buffer.flush()
    return 0


def _cmd_extract(archive: Path, dest: Path, *, delete_after: bool) -> int:
    from zipkit.zip_reader import Unzip

    Unzip.into_dir(archive, dest, delete_zip_after=delete_after)
    print("OK")
    return 0


def _cmd_verify(archive: Path, *, full: bool) -> int:
    from zipkit.verify import verify_archive

    rep = verify_archive(archive, full=full)
    print(f"OK {rep.entries} entries ({rep.files} files, {rep.directories} directories)")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="zipkit", description="zipkit: ZIP archive engine")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_c = sub.add_parser("create", help="Create a ZIP from files and directory trees")
    p_c.add_argument("output", type=Path)
    p_c.add_argument("inputs", type=Path, nargs="+")
    p_c.add_argument(
        "--options",
        default=None,
        help="Archive options (JSON). Use '@file.json' to load from file, or pass JSON inline.",
    )
    p_c.add_argument("--method", choices=["store", "deflate"], default=None, help="Compression method")
    p_c.add_argument("--level", type=int, default=None, help="Deflate level 0..9")
    p_c.add_argument("--comment", default=None, help="Archive comment")
    _add_common_args(p_c)

    p_l = sub.add_parser("list", help="List entries in central directory order")
    p_l.add_argument("archive", type=Path)
    p_l.add_argument("--long", action="store_true", help="Show sizes, method and CRC-32")
    _add_common_args(p_l)

    p_cat = sub.add_parser("cat", help="Write one entry to stdout")
    p_cat.add_argument("archive", type=Path)
    p_cat.add_argument("entry")
    _add_common_args(p_cat)

    p_x = sub.add_parser("extract", help="Extract all entries into a directory")
    p_x.add_argument("archive", type=Path)
    p_x.add_argument("dest", type=Path)
    p_x.add_argument("--delete-after", action="store_true", help="Delete the archive on success")
    _add_common_args(p_x)

    p_v = sub.add_parser("verify", help="Verify archive structure (and CRCs with --full)")
    p_v.add_argument("archive", type=Path)
    p_v.add_argument("--full", action="store_true", help="Decompress every entry and check CRC-32")
    _add_common_args(p_v)

    return p


def main(argv: list[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    p = build_parser()
    ns = p.parse_args(argv)
    _configure_logging(bool(getattr(ns, "verbose", False)))

    try:
        if ns.cmd == "create":
            opts = _resolve_options(ns.options, ns.method, ns.level, ns.comment)
            return _cmd_create(ns.output, list(ns.inputs), opts)
        if ns.cmd == "list":
            return _cmd_list(ns.archive, long=bool(ns.long))
        if ns.cmd == "cat":
            return _cmd_cat(ns.archive, ns.entry)
        if ns.cmd == "extract":
            return _cmd_extract(ns.archive, ns.dest, delete_after=bool(ns.delete_after))
        if ns.cmd == "verify":
            return _cmd_verify(ns.archive, full=bool(ns.full))
        raise AssertionError("unreachable")

    except SystemExit:
        raise
    except ArchiveOptionsError as e:
        # Treat as usage/config error.
        if getattr(ns, "debug", False):
            raise
        print(f"[zipkit] {e}", file=sys.stderr)
        return EXIT_USAGE
    except ZipKitError as e:
        if getattr(ns, "debug", False):
            raise
        print(f"[zipkit] {e}", file=sys.stderr)
        return int(getattr(e, "exit_code", EXIT_GENERIC) or EXIT_GENERIC)
    except Exception as e:
        if getattr(ns, "debug", False):
            raise
        print(f"[zipkit] error: {e}", file=sys.stderr)
        return EXIT_GENERIC


if __name__ == "__main__":
    raise SystemExit(main())
