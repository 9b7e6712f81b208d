"""
Copyright 2025 DNAi inc.

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at

    http://www.apache.org/licenses/LICENSE-2.0

Unless required by applicable law or agreed to in writing, software
distributed under the License is distributed on an "AS IS" BASIS,
WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
See the License for the specific language governing permissions and
limitations under the License.
"""

"""
Utility functions for hexdump-zip.

This module provides little-endian integer decoding from buffers and safe
binary I/O operations shared by both dumping strategies.
"""

import io
import struct
from typing import BinaryIO

from .errors import UnexpectedEndOfFile

_UINT_FORMATS = {1: "<B", 2: "<H", 4: "<I", 8: "<Q"}


def unpack_uint(buffer: bytes, offset: int, size: int) -> int:
    """Decode a little-endian unsigned integer from a buffer.

    Args:
        buffer: Bytes to decode from.
        offset: Position of the first byte of the integer.
        size: Width of the integer in bytes (1, 2, 4 or 8).

    Returns:
        The decoded unsigned integer.

    Raises:
        ValueError: If the width is unsupported or the buffer is too short.
    """
    fmt = _UINT_FORMATS.get(size)
    if fmt is None:
        raise ValueError(f"Unsupported integer width: {size}")
    if offset < 0 or offset + size > len(buffer):
        raise ValueError(
            f"Integer of {size} bytes at {offset} exceeds buffer of {len(buffer)} bytes"
        )
    return struct.unpack_from(fmt, buffer, offset)[0]


def unpack_uint16(buffer: bytes, offset: int) -> int:
    """Decode a little-endian 16-bit unsigned integer from a buffer."""
    return unpack_uint(buffer, offset, 2)


def unpack_uint32(buffer: bytes, offset: int) -> int:
    """Decode a little-endian 32-bit unsigned integer from a buffer."""
    return unpack_uint(buffer, offset, 4)


def unpack_uint64(buffer: bytes, offset: int) -> int:
    """Decode a little-endian 64-bit unsigned integer from a buffer."""
    return unpack_uint(buffer, offset, 8)


def read_exact(f: BinaryIO, size: int) -> bytes:
    """Read exactly 'size' bytes from file, raising UnexpectedEndOfFile on short read.

    Args:
        f: Binary file-like object to read from.
        size: Number of bytes to read.

    Returns:
        Exactly 'size' bytes of data.

    Raises:
        UnexpectedEndOfFile: If fewer than 'size' bytes could be read.
        ValueError: If size is negative.
    """
    if size < 0:
        raise ValueError(f"Invalid read size: {size} (must be non-negative)")

    chunks = []
    remaining = size
    while remaining > 0:
        chunk = f.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    data = b"".join(chunks)
    if len(data) != size:
        raise UnexpectedEndOfFile(
            f"Unexpected end of file: expected {size} bytes, got {len(data)}"
        )
    return data


def read_at(f: BinaryIO, offset: int, size: int) -> bytes:
    """Seek to 'offset' and read exactly 'size' bytes.

    Raises:
        UnexpectedEndOfFile: If the file ends before 'size' bytes were read.
    """
    f.seek(offset)
    try:
        return read_exact(f, size)
    except UnexpectedEndOfFile as e:
        raise UnexpectedEndOfFile(f"{e} at offset 0x{offset:x}") from None


def get_file_size(f: BinaryIO) -> int:
    """Return the size of a seekable file, leaving its position at the start."""
    f.seek(0, io.SEEK_END)
    size = f.tell()
    f.seek(0)
    return size


def hex_width(value: int) -> int:
    """Number of hex digits needed to print 'value'."""
    return len(f"{value:x}")
