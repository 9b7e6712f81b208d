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
Annotated hex transcript writer.

This module provides the Hexdumper class, which writes section headers,
little-endian struct fields and hex rows with an optional text overlay.
Both dumping strategies produce their whole output through it.

Line formats:

    :0x<offset> ; <label>
    <hex bytes> ; "<cp437 glyphs>" ; <decimal> ; 0x<hex> ; <field name>
    <hex bytes>[ ; cp437"<text>"| ; utf8"<text>"]
"""

from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, Optional, TextIO

from .codepage import cp437
from .constants import BLOB_ROW_LENGTH, COMPACT_ROW_LENGTH
from .utils import unpack_uint

# Written in place of undecodable UTF-8 ("\xef\xbf\xbd" once encoded)
ERROR_CHARACTER = "�"

# Zero-padded decimal width for each maximum field width
_DECIMAL_WIDTHS = {2: 5, 4: 10, 8: 20}
# Widths accepted for a single struct field
FIELD_WIDTHS = (1, 2, 4, 8)

_SIMPLE_ESCAPES = {
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    '"': '\\"',
    "\\": "\\\\",
}
_UNICODE_NEWLINES = (0x85, 0x2028, 0x2029)


class Encoding(Enum):
    """Text overlay rendered after the hex bytes of a blob row."""

    NONE = "none"
    CP437 = "cp437"
    UTF8 = "utf8"


@dataclass(frozen=True)
class BlobConfig:
    """Row layout for a blob.

    Attributes:
        row_length: Bytes per row.
        spaces: Whether hex bytes are separated by a space.
        encoding: Text overlay appended to each row.
    """

    row_length: int = BLOB_ROW_LENGTH
    spaces: bool = True
    encoding: Encoding = Encoding.NONE


DEFAULT_BLOB = BlobConfig()
COMPACT_BLOB = BlobConfig(row_length=COMPACT_ROW_LENGTH, spaces=False)
CP437_BLOB = BlobConfig(encoding=Encoding.CP437)
UTF8_BLOB = BlobConfig(encoding=Encoding.UTF8)


@dataclass
class PartialUtf8State:
    """A multi-byte UTF-8 sequence cut off at the end of a row.

    Attributes:
        saved: Bytes of the sequence seen so far (at most 3).
        bytes_still_needed: Continuation bytes expected from the next row.
    """

    saved: bytearray = field(default_factory=bytearray)
    bytes_still_needed: int = 0

    @property
    def bytes_saved(self) -> int:
        return len(self.saved)

    def reset(self) -> None:
        self.saved.clear()
        self.bytes_still_needed = 0


@dataclass
class BlobState:
    """Carry state for rendering one logical blob over several calls.

    Holds back the last row of each part until more bytes (or the end of the
    blob) arrive, so that row boundaries and text overlays do not depend on
    how the blob was chunked.
    """

    utf8: PartialUtf8State = field(default_factory=PartialUtf8State)
    pending_row: bytearray = field(default_factory=bytearray)
    rows_written: int = 0

    def reset(self) -> None:
        self.utf8.reset()
        self.pending_row.clear()
        self.rows_written = 0


def utf8_sequence_length(lead: int) -> Optional[int]:
    """Length of the UTF-8 sequence introduced by 'lead', or None if it cannot start one."""
    if lead < 0x80:
        return 1
    if 0xC0 <= lead <= 0xDF:
        return 2
    if 0xE0 <= lead <= 0xEF:
        return 3
    if 0xF0 <= lead <= 0xF7:
        return 4
    return None


def escape_codepoint(sequence: bytes) -> str:
    """Render one complete UTF-8 sequence for a utf8 overlay.

    Args:
        sequence: Bytes of exactly one sequence, lead byte first.

    Returns:
        The escaped text, or the error character if the sequence does not
        decode to a single valid code point.
    """
    try:
        char = bytes(sequence).decode("utf-8")
    except UnicodeDecodeError:
        return ERROR_CHARACTER
    if char in _SIMPLE_ESCAPES:
        return _SIMPLE_ESCAPES[char]
    codepoint = ord(char)
    if codepoint <= 0x1F or codepoint == 0x7F:
        return f"\\x{codepoint:02x}"
    if codepoint in _UNICODE_NEWLINES:
        return f"\\u{codepoint:04x}"
    return char


def escape_cp437(row: bytes) -> str:
    """Render a row as CP437 glyphs with quotes and backslashes escaped."""
    out = []
    for b in row:
        if b == 0x22 or b == 0x5C:
            out.append("\\" + chr(b))
        else:
            out.append(cp437(b))
    return "".join(out)


class Hexdumper:
    """Writer for annotated hex transcripts.

    Example:
        dumper = Hexdumper(sys.stdout, offset_width=4)
        dumper.write_section_header(0, "End of central directory record")
        cursor = dumper.read_struct_field(buffer, 4, 0, 4, "End of central directory signature")
    """

    def __init__(self, output: TextIO, offset_width: int = 0):
        """Initialize Hexdumper.

        Args:
            output: Text sink receiving the transcript.
            offset_width: Number of hex digits section offsets are zero-padded to.
        """
        self.output = output
        self.offset_width = offset_width
        self.indentation = 0
        self._wrote_anything = False

    def write(self, text: str) -> None:
        """Write raw text to the output."""
        if text:
            self.output.write(text)
            self._wrote_anything = True

    def indent(self) -> None:
        self.indentation += 1

    def outdent(self) -> None:
        if self.indentation == 0:
            raise ValueError("outdent() without matching indent()")
        self.indentation -= 1

    @contextmanager
    def indented(self, levels: int = 1) -> Iterator[None]:
        """Indent every line written inside the block, restoring on exit."""
        for _ in range(levels):
            self.indent()
        try:
            yield
        finally:
            for _ in range(levels):
                self.outdent()

    def _write_indentation(self) -> None:
        self.write("  " * self.indentation)

    def format_offset(self, offset: int) -> str:
        if self.offset_width:
            return f"0x{offset:0{self.offset_width}x}"
        return f"0x{offset:x}"

    def write_section_header(self, offset: int, label: str) -> None:
        """Write a ':0x<offset> ; <label>' line.

        Top-level headers are preceded by a blank line unless they start the
        transcript.
        """
        if self.indentation == 0 and self._wrote_anything:
            self.write("\n")
        self._write_indentation()
        self.write(f":{self.format_offset(offset)} ; {label}\n")

    def read_struct_field(
        self,
        buffer: bytes,
        max_size: int,
        cursor: int,
        size: int,
        name: str,
    ) -> int:
        """Write one little-endian integer field and return the advanced cursor.

        Args:
            buffer: Bytes of the enclosing structure.
            max_size: Widest field of the structure (2, 4 or 8); sets column padding.
            cursor: Position of the field in 'buffer'.
            size: Width of the field in bytes (1, 2, 4 or 8).
            name: Field name written at the end of the line.

        Returns:
            cursor + size.

        Raises:
            ValueError: If the widths are invalid or the field exceeds the buffer.
        """
        if max_size not in _DECIMAL_WIDTHS:
            raise ValueError(f"Invalid maximum field width: {max_size}")
        if size not in FIELD_WIDTHS or size > max_size:
            raise ValueError(f"Invalid field width {size} for maximum width {max_size}")
        if cursor < 0 or cursor + size > len(buffer):
            raise ValueError(
                f"Field '{name}' ({size} bytes at {cursor}) exceeds buffer of {len(buffer)} bytes"
            )

        raw = buffer[cursor : cursor + size]
        value = unpack_uint(buffer, cursor, size)
        pad = max_size - size
        hex_bytes = " ".join(f"{b:02x}" for b in raw) + "   " * pad
        glyphs = "".join(cp437(b) for b in raw)
        decimal = f"{value:0{_DECIMAL_WIDTHS[max_size]}d}"
        hex_value = f"0x{value:0{size * 2}x}" + "  " * pad

        self._write_indentation()
        self.write(f'{hex_bytes} ; "{glyphs}"{" " * pad} ; {decimal} ; {hex_value} ; {name}\n')
        return cursor + size

    def write_blob(self, buffer: bytes, config: BlobConfig = DEFAULT_BLOB) -> None:
        """Write a complete blob in rows."""
        self.write_blob_part(buffer, config, True, True, BlobState())

    def write_blob_part(
        self,
        buffer: bytes,
        config: BlobConfig,
        is_beginning: bool,
        is_end: bool,
        state: BlobState,
    ) -> None:
        """Write one chunk of a blob that arrives in several parts.

        Successive calls sharing 'state' produce the same output as one
        write_blob() call over the concatenated parts, wherever the parts
        were split.

        Args:
            buffer: Next chunk of the blob.
            config: Row layout, identical for every part.
            is_beginning: True for the first part of the blob; resets 'state'.
            is_end: True for the last part of the blob; flushes 'state'.
            state: Carry state shared by all parts of the blob.
        """
        if is_beginning:
            state.reset()
        if state.pending_row:
            data = bytes(state.pending_row) + bytes(buffer)
            state.pending_row.clear()
        else:
            data = bytes(buffer)

        row_length = config.row_length
        cursor = 0
        while cursor < len(data):
            row_end = min(cursor + row_length, len(data))
            if row_end == len(data) and not is_end:
                # The last row waits until we know whether more bytes follow.
                state.pending_row.extend(data[cursor:])
                return
            self._write_blob_row(
                data[cursor:row_end],
                config,
                state.rows_written == 0,
                is_end and row_end == len(data),
                state.utf8,
            )
            state.rows_written += 1
            cursor = row_end

    def _write_blob_row(
        self,
        row: bytes,
        config: BlobConfig,
        is_beginning: bool,
        is_end: bool,
        partial_utf8: PartialUtf8State,
    ) -> None:
        separator = " " if config.spaces else ""
        line = [separator.join(f"{b:02x}" for b in row)]

        if not is_beginning and config.encoding is not Encoding.NONE:
            # Keep the overlay column aligned with the full rows above.
            line.append("   " * (config.row_length - len(row)))

        if config.encoding is Encoding.CP437:
            line.append(f' ; cp437"{escape_cp437(row)}"')
        elif config.encoding is Encoding.UTF8:
            line.append(f' ; utf8"{self._decode_utf8_row(row, is_end, partial_utf8)}"')

        self._write_indentation()
        self.write("".join(line) + "\n")

    def _decode_utf8_row(self, row: bytes, is_end: bool, state: PartialUtf8State) -> str:
        out = []
        i = 0

        if state.bytes_still_needed > 0:
            # Finish the sequence started on the previous row.
            take = min(state.bytes_still_needed, len(row))
            state.saved.extend(row[:take])
            state.bytes_still_needed -= take
            i = take
            if state.bytes_still_needed == 0:
                out.append(escape_codepoint(state.saved))
                state.reset()
            elif is_end:
                out.append(ERROR_CHARACTER)
                state.reset()

        while i < len(row):
            length = utf8_sequence_length(row[i])
            if length is None:
                out.append(ERROR_CHARACTER)
                i += 1
                continue
            if i + length > len(row):
                if is_end:
                    out.append(ERROR_CHARACTER)
                else:
                    state.saved = bytearray(row[i:])
                    state.bytes_still_needed = length - (len(row) - i)
                break
            out.append(escape_codepoint(row[i : i + length]))
            i += length

        return "".join(out)
