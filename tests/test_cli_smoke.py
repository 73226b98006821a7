from __future__ import annotations

import io
import json
import os
import subprocess
import sys
import zipfile
from pathlib import Path

SRC = Path(__file__).resolve().parents[1] / "src"


def _run_cli(*args: str, cwd: Path | None = None) -> subprocess.CompletedProcess[str]:
    """Run zipkit CLI through a python -c wrapper.

    This avoids assuming the console-script entrypoint is installed.
    """
    cmd = [
        sys.executable,
        "-c",
        "from zipkit.cli import main; raise SystemExit(main())",
        *args,
    ]
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(p for p in (str(SRC), env.get("PYTHONPATH", "")) if p)
    return subprocess.run(
        cmd,
        cwd=str(cwd) if cwd else None,
        env=env,
        text=True,
        capture_output=True,
    )


def _tree(root: Path) -> None:
    (root / "sub").mkdir(parents=True)
    (root / "a.txt").write_text("HELLO 123\n", encoding="utf-8")
    (root / "sub" / "b.txt").write_text("HELLO 124\n" * 50, encoding="utf-8")


def test_cli_create_list_cat_verify_extract(tmp_path: Path) -> None:
    in_dir = tmp_path / "in"
    arch = tmp_path / "out.zip"
    back = tmp_path / "back"
    _tree(in_dir)
    extra = tmp_path / "extra.txt"
    extra.write_text("loose file\n", encoding="utf-8")

    r = _run_cli("create", str(arch), str(in_dir), str(extra), "--comment", "smoke")
    assert r.returncode == 0, (r.stdout, r.stderr)
    assert "OK 5 entries" in r.stdout

    r = _run_cli("list", str(arch))
    assert r.returncode == 0, (r.stdout, r.stderr)
    assert r.stdout.splitlines() == ["in/", "in/a.txt", "in/sub/", "in/sub/b.txt", "extra.txt"]

    r = _run_cli("list", str(arch), "--long")
    assert r.returncode == 0, (r.stdout, r.stderr)
    assert "deflate" in r.stdout

    r = _run_cli("cat", str(arch), "in/a.txt")
    assert r.returncode == 0, (r.stdout, r.stderr)
    assert r.stdout == "HELLO 123\n"

    r = _run_cli("verify", str(arch), "--full")
    assert r.returncode == 0, (r.stdout, r.stderr)
    assert r.stdout.startswith("OK 5 entries")

    r = _run_cli("extract", str(arch), str(back), "--delete-after")
    assert r.returncode == 0, (r.stdout, r.stderr)
    assert (back / "in" / "sub" / "b.txt").read_text(encoding="utf-8") == "HELLO 124\n" * 50
    assert (back / "extra.txt").read_text(encoding="utf-8") == "loose file\n"
    assert not arch.exists()


def test_cli_options_document(tmp_path: Path) -> None:
    inp = tmp_path / "in.txt"
    inp.write_text("x" * 1000, encoding="utf-8")
    arch = tmp_path / "o.zip"
    opts = json.dumps({"spec": "zipkit.options.v1", "method": "store"})

    r = _run_cli("create", str(arch), str(inp), "--options", opts)
    assert r.returncode == 0, (r.stdout, r.stderr)
    with zipfile.ZipFile(arch) as zf:
        assert zf.getinfo("in.txt").compress_type == zipfile.ZIP_STORED

    # CLI flags win over the document
    r = _run_cli("create", str(arch), str(inp), "--options", opts, "--method", "deflate")
    assert r.returncode == 0, (r.stdout, r.stderr)
    with zipfile.ZipFile(arch) as zf:
        assert zf.getinfo("in.txt").compress_type == zipfile.ZIP_DEFLATED


def test_cli_usage_errors_exit_2(tmp_path: Path) -> None:
    inp = tmp_path / "in.txt"
    inp.write_text("x", encoding="utf-8")

    r = _run_cli("create", str(tmp_path / "o.zip"), str(inp), "--options", "{}")
    assert r.returncode == 2
    assert "[zipkit]" in r.stderr

    r = _run_cli("create", str(tmp_path / "o.zip"), str(inp), "--level", "12")
    assert r.returncode == 2
    assert "[zipkit]" in r.stderr


def test_cli_not_found_exit_12(tmp_path: Path) -> None:
    r = _run_cli("list", str(tmp_path / "missing.zip"))
    assert r.returncode == 12
    assert "[zipkit]" in r.stderr

    inp = tmp_path / "in.txt"
    inp.write_text("x", encoding="utf-8")
    arch = tmp_path / "a.zip"
    assert _run_cli("create", str(arch), str(inp)).returncode == 0
    r = _run_cli("cat", str(arch), "nope.txt")
    assert r.returncode == 12


def test_cli_tamper_exit_13(tmp_path: Path) -> None:
    arch = tmp_path / "t.zip"
    with zipfile.ZipFile(arch, "w", compression=zipfile.ZIP_STORED) as zf:
        zf.writestr("a.txt", b"HELLO 123\n")

    blob = bytearray(arch.read_bytes())
    pos = blob.index(b"HELLO 123\n")
    blob[pos] ^= 0x01
    arch.write_bytes(bytes(blob))

    r = _run_cli("verify", str(arch))
    assert r.returncode == 0, (r.stdout, r.stderr)

    r = _run_cli("verify", str(arch), "--full")
    assert r.returncode == 13
    assert "CRC-32 mismatch" in r.stderr


def test_cli_traversal_exit_14(tmp_path: Path) -> None:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        zf.writestr("../evil.txt", b"x")
    arch = tmp_path / "evil.zip"
    arch.write_bytes(buf.getvalue())

    r = _run_cli("extract", str(arch), str(tmp_path / "dest"))
    assert r.returncode == 14
    assert not (tmp_path / "evil.txt").exists()


def test_cli_malformed_exit_10(tmp_path: Path) -> None:
    junk = tmp_path / "junk.zip"
    junk.write_bytes(b"\x00" * 100)
    r = _run_cli("list", str(junk))
    assert r.returncode == 10
    assert "end of central directory" in r.stderr
