"""Method dispatch for entry payloads.

ZIP method ids are stable and come from the APPNOTE; only store (0) and
deflate (8) are supported.
"""

from __future__ import annotations

import zlib
from typing import Protocol

from zipkit.core.codec_deflate import CodecDeflate
from zipkit.core.codec_raw import CodecRaw
from zipkit.errors import UnsupportedFeature

METHOD_STORE = 0
METHOD_DEFLATE = 8

METHOD_TO_NAME: dict[int, str] = {
    METHOD_STORE: "store",
    METHOD_DEFLATE: "deflate",
}
NAME_TO_METHOD: dict[str, int] = {v: k for k, v in METHOD_TO_NAME.items()}


class ByteCodec(Protocol):
    codec_id: str
    method: int

    def compress(self, data: bytes) -> bytes: ...

    def decompress(self, data: bytes, out_size: int | None = None) -> bytes: ...


def method_id(method: int | str) -> int:
    """Accept a method name ("store"/"deflate") or a ZIP method id."""
    if isinstance(method, str):
        m = NAME_TO_METHOD.get(method.strip().lower())
        if m is None:
            raise UnsupportedFeature(f"compression method not supported: {method!r}")
        return m
    m = int(method)
    if m not in METHOD_TO_NAME:
        raise UnsupportedFeature(f"compression method not supported: {m}")
    return m


def method_name(method: int) -> str:
    return METHOD_TO_NAME.get(int(method), f"method-{int(method)}")


def get_codec(method: int | str, *, level: int = 6) -> ByteCodec:
    m = method_id(method)
    if m == METHOD_DEFLATE:
        return CodecDeflate(level=level)
    return CodecRaw()


def compress(data: bytes, method: int | str, *, level: int = 6) -> bytes:
    return get_codec(method, level=level).compress(data)


def decompress(data: bytes, method: int | str, expected_size: int) -> bytes:
    return get_codec(method).decompress(data, out_size=expected_size)


def crc32(data: bytes) -> int:
    return zlib.crc32(data) & 0xFFFFFFFF
