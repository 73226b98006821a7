from __future__ import annotations

from zipkit.errors import MalformedArchive


class CodecRaw:
    """
    Store codec (ZIP method 0): bytes are copied as-is.
    """

    codec_id: str = "store"
    method: int = 0

    def compress(self, data: bytes) -> bytes:
        return bytes(data)

    def decompress(self, data: bytes, out_size: int | None = None) -> bytes:
        b = bytes(data)
        if out_size is not None and len(b) != int(out_size):
            raise MalformedArchive(f"store: size mismatch: got={len(b)} expected={out_size}")
        return b
