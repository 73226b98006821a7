from __future__ import annotations

import zlib

from zipkit.errors import MalformedArchive


class CodecDeflate:
    """DEFLATE codec (ZIP method 8): raw deflate stream, no zlib header/trailer."""

    codec_id: str = "deflate"
    method: int = 8

    def __init__(self, level: int = 6):
        if not (0 <= level <= 9):
            raise ValueError(f"deflate level must be 0..9, got {level}")
        self.level = level

    def compress(self, data: bytes) -> bytes:
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise TypeError("data must be bytes")
        c = zlib.compressobj(self.level, zlib.DEFLATED, -zlib.MAX_WBITS)
        return c.compress(bytes(data)) + c.flush()

    def decompress(self, comp: bytes, out_size: int | None = None) -> bytes:
        if not isinstance(comp, (bytes, bytearray, memoryview)):
            raise TypeError("comp must be bytes")
        d = zlib.decompressobj(-zlib.MAX_WBITS)
        try:
            if out_size is None:
                out = d.decompress(bytes(comp)) + d.flush()
            else:
                # never inflate more than one byte past the declared size
                out = d.decompress(bytes(comp), int(out_size) + 1)
                if not d.unconsumed_tail:
                    out += d.flush()
        except zlib.error as e:
            raise MalformedArchive(f"deflate: invalid stream: {e}") from e

        if out_size is not None and len(out) != int(out_size):
            raise MalformedArchive(
                f"deflate: size mismatch: got={len(out)}{'+' if d.unconsumed_tail else ''} expected={out_size}"
            )
        if not d.eof:
            raise MalformedArchive("deflate: stream truncated (no final block)")
        return out
