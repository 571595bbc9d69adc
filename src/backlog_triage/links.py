"""Shareable playground links carrying a compressed snippet.

The ``c`` parameter holds LZUTF8 data in standard Base64, the format the
playground reads. LZUTF8 keeps UTF-8 bytes as literals and replaces
repeated runs with sequence pointers:

    110lllll 0ddddddd             length 4-31, distance 1-127
    111lllll 0ddddddd dddddddd    length 4-31, distance 128-32767

A UTF-8 lead byte is always followed by a byte with its top bit set, so a
second byte with the top bit clear marks a pointer.
"""

from __future__ import annotations

import base64
import binascii
from urllib.parse import parse_qs, urlencode, urlparse

PLAYGROUND_URL = "https://typespec.io/playground"

MIN_SEQUENCE_LENGTH = 4
MAX_SEQUENCE_LENGTH = 31
MAX_SEQUENCE_DISTANCE = 32767
_BUCKET_CAPACITY = 64


def lzutf8_compress(data: bytes) -> bytes:
    out = bytearray()
    table: dict[bytes, list[int]] = {}
    pos, size = 0, len(data)

    while pos < size:
        length = distance = 0
        if pos + MIN_SEQUENCE_LENGTH <= size:
            key = data[pos:pos + MIN_SEQUENCE_LENGTH]
            limit = min(MAX_SEQUENCE_LENGTH, size - pos)
            bucket = table.setdefault(key, [])
            # Newest candidates first: shorter distances encode smaller.
            for start in reversed(bucket):
                if pos - start > MAX_SEQUENCE_DISTANCE:
                    break
                run = MIN_SEQUENCE_LENGTH
                while run < limit and data[start + run] == data[pos + run]:
                    run += 1
                if run > length:
                    length, distance = run, pos - start
                    if run == limit:
                        break
            bucket.append(pos)
            if len(bucket) > _BUCKET_CAPACITY:
                del bucket[0]

        if not length:
            out.append(data[pos])
            pos += 1
        elif distance < 128:
            out += bytes((0xC0 | length, distance))
            pos += length
        else:
            out += bytes((0xE0 | length, distance >> 8, distance & 0xFF))
            pos += length
    return bytes(out)


def lzutf8_decompress(data: bytes) -> bytes:
    """Expand LZUTF8 data. Raises ValueError on a dangling or truncated pointer."""
    out = bytearray()
    pos, size = 0, len(data)

    while pos < size:
        byte = data[pos]
        if byte >> 6 != 3 or pos + 1 >= size or data[pos + 1] >> 7:
            out.append(byte)
            pos += 1
            continue

        length = byte & 0x1F
        if byte >> 5 == 6:
            distance = data[pos + 1]
            pos += 2
        else:
            if pos + 2 >= size:
                raise ValueError("truncated sequence pointer")
            distance = (data[pos + 1] << 8) | data[pos + 2]
            pos += 3

        start = len(out) - distance
        if distance == 0 or start < 0:
            raise ValueError(f"sequence pointer out of range (distance {distance})")
        # Byte by byte: a run may overlap the bytes it produces.
        for offset in range(length):
            out.append(out[start + offset])
    return bytes(out)


def build_share_link(code: str, emitters: list[str] | None = None) -> str:
    """Encode ``code`` (and optional emitters) into a playground URL."""
    compressed = base64.b64encode(lzutf8_compress(code.encode("utf-8"))).decode("ascii")
    params = {"c": compressed}
    if emitters:
        params["e"] = ",".join(emitters)
    return f"{PLAYGROUND_URL}?{urlencode(params)}"


def decode_share_link(url: str) -> str:
    """Return the snippet carried by a playground link.

    Raises:
        ValueError: if the URL has no content parameter or it doesn't decode.
    """
    values = parse_qs(urlparse(url).query).get("c")
    if not values:
        raise ValueError("No 'c' (content) parameter found in URL")
    # Links pasted without escaping turn '+' into a space.
    encoded = values[0].strip().replace(" ", "+")
    encoded += "=" * (-len(encoded) % 4)
    try:
        raw = base64.b64decode(encoded)
        return lzutf8_decompress(raw).decode("utf-8")
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Failed to decode: {e}") from e
