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
Forward-only ZIP dumper.

This module provides the StreamingDumper class, which renders an archive in
a single sequential pass without knowing its size. Structures are recognized
by the signature at the read position; entries whose size is unknown are
delimited by scanning for the data descriptor signature.
"""

import logging
from enum import Enum
from typing import BinaryIO, Optional, TextIO

from .constants import (
    BLOB_CHUNK_SIZE,
    CENTRAL_DIR_HEADER,
    CENTRAL_DIR_HEADER_SIZE,
    DATA_DESCRIPTOR,
    DATA_DESCRIPTOR_BYTES,
    DATA_DESCRIPTOR_SIZE,
    END_OF_CENTRAL_DIR,
    END_OF_CENTRAL_DIR_SIZE,
    LOCAL_FILE_HEADER,
    LOCAL_FILE_HEADER_SIZE,
    ZIP64_DATA_DESCRIPTOR_SIZE,
    ZIP64_END_OF_CENTRAL_DIR,
    ZIP64_END_OF_CENTRAL_DIR_LOCATOR,
    ZIP64_END_OF_CENTRAL_DIR_SIZE,
    ZIP64_LOCATOR_SIZE,
)
from .errors import (
    ExpectedEndOfCentralDirectoryRecord,
    ExpectedEof,
    ExpectedZip64EndOfCentralDirectoryLocator,
    UnexpectedEndOfFile,
    WrongSignature,
    ZipFormatError,
)
from .hexdumper import COMPACT_BLOB, BlobState, Hexdumper
from .records import (
    dump_central_directory_header,
    dump_data_descriptor,
    dump_end_of_central_directory,
    dump_file_contents,
    dump_local_file_header,
    dump_zip64_end_of_central_directory,
    dump_zip64_locator,
)
from .utils import read_exact, unpack_uint32

logger = logging.getLogger(__name__)

SIGNATURE_SIZE = 4


class PushbackReader:
    """Sequential reader with a single slot for one peeked signature.

    'offset' is the position of the next byte a caller will receive, so it
    excludes any bytes sitting in the pushback slot.
    """

    def __init__(self, file: BinaryIO):
        self._file = file
        self._pushback: Optional[bytes] = None
        self.offset = 0

    def push_back(self, data: bytes) -> None:
        """Return up to 4 bytes to the stream.

        Raises:
            ValueError: If the slot is already occupied or 'data' is too long.
        """
        if self._pushback is not None:
            raise ValueError("Pushback slot is already occupied")
        if len(data) > SIGNATURE_SIZE:
            raise ValueError(f"Cannot push back {len(data)} bytes")
        if data:
            self._pushback = bytes(data)
            self.offset -= len(data)

    def _take_pushback(self, size: int) -> bytes:
        if self._pushback is None:
            return b""
        taken = self._pushback[:size]
        rest = self._pushback[size:]
        self._pushback = rest or None
        return taken

    def peek_signature(self) -> Optional[int]:
        """Return the 32-bit signature at the read position without consuming it.

        Returns:
            The signature, or None if fewer than 4 bytes remain.
        """
        data = self._take_pushback(SIGNATURE_SIZE)
        if len(data) < SIGNATURE_SIZE:
            data += self._file.read(SIGNATURE_SIZE - len(data))
        self.offset += len(data)
        self.push_back(data)
        if len(data) < SIGNATURE_SIZE:
            return None
        return unpack_uint32(data, 0)

    def read_exact(self, size: int) -> bytes:
        """Read exactly 'size' bytes, draining the pushback slot first.

        Raises:
            UnexpectedEndOfFile: If the input ends first.
        """
        head = self._take_pushback(size)
        try:
            data = head + read_exact(self._file, size - len(head))
        except UnexpectedEndOfFile as e:
            raise UnexpectedEndOfFile(f"{e} at offset 0x{self.offset + len(head):x}") from None
        self.offset += size
        return data

    def read(self, offset: int, size: int) -> bytes:
        """Read 'size' bytes that must start at the current position.

        Raises:
            ValueError: If 'offset' is not the current position.
            UnexpectedEndOfFile: If the input ends first.
        """
        if offset != self.offset:
            raise ValueError(f"Forward-only read at 0x{offset:x}, position is 0x{self.offset:x}")
        return self.read_exact(size)

    def read_byte(self) -> Optional[int]:
        """Read one byte, or return None at end of input."""
        data = self._take_pushback(1)
        if not data:
            data = self._file.read(1)
            if not data:
                return None
        self.offset += 1
        return data[0]

    def at_eof(self) -> bool:
        if self._pushback is not None:
            return False
        data = self._file.read(1)
        if not data:
            return True
        self.push_back(data)
        self.offset += len(data)
        return False


class Position(Enum):
    """Part of the archive the walker is in."""

    START = "start"
    LOCAL_ENTRIES = "local entries"
    CENTRAL_DIRECTORY = "central directory"


class StreamingDumper:
    """Single-pass dumper for ZIP and ZIP64 archives.

    Reads strictly forward, so the input may be a pipe. Structures are
    rendered in file order as soon as they are read.

    Example:
        with open("archive.zip", "rb") as f:
            StreamingDumper(f, sys.stdout).dump()
    """

    def __init__(self, input_file: str | BinaryIO, output: TextIO):
        """Initialize StreamingDumper with a file path or readable file-like object.

        Args:
            input_file: Path to the archive or binary file-like object with read().
            output: Text sink receiving the transcript.
        """
        if hasattr(input_file, "__fspath__"):
            input_file = str(input_file)

        if isinstance(input_file, str):
            self._file = open(input_file, "rb")
            self._should_close = True
        else:
            if not hasattr(input_file, "read"):
                raise ZipFormatError("File-like object must have a read() method")
            self._file = input_file
            self._should_close = False

        self.reader = PushbackReader(self._file)
        self.dumper = Hexdumper(output)
        self.position = Position.START

    def dump(self) -> None:
        """Walk the archive from the first byte to the last.

        Raises:
            WrongSignature: If a signature is unknown or out of place.
            ExpectedZip64EndOfCentralDirectoryLocator: If the ZIP64 record is
                not followed by its locator.
            ExpectedEndOfCentralDirectoryRecord: If the locator is not
                followed by the end of central directory record.
            ExpectedEof: If bytes follow the end of central directory record.
            UnexpectedEndOfFile: If the input ends inside or between structures.
            ExtraFieldError: If an extra fields region is malformed.
        """
        local_index = 0
        central_index = 0
        while True:
            offset = self.reader.offset
            signature = self.reader.peek_signature()
            if signature is None:
                raise UnexpectedEndOfFile(f"Unexpected end of input at 0x{offset:x}")

            if signature == LOCAL_FILE_HEADER:
                self._expect(signature, offset, Position.START, Position.LOCAL_ENTRIES)
                self._enter(Position.LOCAL_ENTRIES)
                self._consume_local_file(local_index)
                local_index += 1
            elif signature == CENTRAL_DIR_HEADER:
                self._expect(signature, offset, Position.LOCAL_ENTRIES, Position.CENTRAL_DIRECTORY)
                self._enter(Position.CENTRAL_DIRECTORY)
                self._consume_central_directory_header(central_index)
                central_index += 1
            elif signature == ZIP64_END_OF_CENTRAL_DIR:
                self._expect(signature, offset, Position.START, Position.CENTRAL_DIRECTORY)
                self._consume_zip64_end()
                break
            elif signature == END_OF_CENTRAL_DIR:
                self._expect(signature, offset, Position.START, Position.CENTRAL_DIRECTORY)
                self._consume_end()
                break
            else:
                raise WrongSignature(signature, offset, self.position.value)

        if not self.reader.at_eof():
            raise ExpectedEof(f"Unexpected data after end of central directory record at 0x{self.reader.offset:x}")
        logger.debug("Walked %d local entries and %d central directory entries", local_index, central_index)

    def _expect(self, signature: int, offset: int, *allowed: Position) -> None:
        if self.position not in allowed:
            raise WrongSignature(signature, offset, self.position.value)

    def _enter(self, position: Position) -> None:
        if position is not self.position:
            logger.debug("Entering %s at 0x%x", position.value, self.reader.offset)
            self.position = position

    def _consume_local_file(self, entry_index: int) -> None:
        offset = self.reader.offset
        buffer = self.reader.read_exact(LOCAL_FILE_HEADER_SIZE)
        record = dump_local_file_header(self.dumper, self.reader, offset, buffer, entry_index)

        if record.header.has_unknown_size:
            self._consume_unknown_length_contents(record.end)
            # The scan only stops on a descriptor signature.
            self._consume_data_descriptor(record.zip64.saw_zip64)
            return

        dump_file_contents(self.dumper, self.reader, record.end, record.compressed_size)
        if self.reader.peek_signature() == DATA_DESCRIPTOR:
            self._consume_data_descriptor(record.zip64.saw_zip64)

    def _consume_unknown_length_contents(self, offset: int) -> None:
        """Render payload bytes up to the next data descriptor signature.

        Bytes matching a prefix of the signature are held back until the
        match either completes or fails. On failure they are released as
        payload and the byte that broke the match is tried again as the
        start of a new match. Payload is flushed in bounded chunks.

        Raises:
            UnexpectedEndOfFile: If the input ends before a signature is found.
        """
        state = BlobState()
        pending = bytearray()
        flushed = 0
        matched = 0

        def flush(is_end: bool) -> None:
            nonlocal flushed
            if flushed == 0:
                if not pending:
                    return
                self.dumper.write_section_header(offset, "File Contents")
            self.dumper.write_blob_part(bytes(pending), COMPACT_BLOB, flushed == 0, is_end, state)
            flushed += len(pending)
            pending.clear()

        while True:
            b = self.reader.read_byte()
            if b is None:
                raise UnexpectedEndOfFile(
                    f"Input ended while searching for a data descriptor after 0x{offset:x}"
                )
            if b == DATA_DESCRIPTOR_BYTES[matched]:
                matched += 1
                if matched == len(DATA_DESCRIPTOR_BYTES):
                    break
                continue
            if matched:
                pending += DATA_DESCRIPTOR_BYTES[:matched]
                matched = 0
            if b == DATA_DESCRIPTOR_BYTES[0]:
                matched = 1
            else:
                pending.append(b)
            if len(pending) >= BLOB_CHUNK_SIZE:
                flush(is_end=False)

        flush(is_end=True)
        self.reader.push_back(DATA_DESCRIPTOR_BYTES)
        logger.debug("Data descriptor found at 0x%x after %d payload bytes", self.reader.offset, flushed)

    def _consume_data_descriptor(self, is_zip64: bool) -> None:
        offset = self.reader.offset
        size = ZIP64_DATA_DESCRIPTOR_SIZE if is_zip64 else DATA_DESCRIPTOR_SIZE
        dump_data_descriptor(self.dumper, offset, self.reader.read_exact(size))

    def _consume_central_directory_header(self, entry_index: int) -> None:
        offset = self.reader.offset
        buffer = self.reader.read_exact(CENTRAL_DIR_HEADER_SIZE)
        dump_central_directory_header(self.dumper, self.reader, offset, buffer, entry_index)

    def _consume_zip64_end(self) -> None:
        offset = self.reader.offset
        buffer = self.reader.read_exact(ZIP64_END_OF_CENTRAL_DIR_SIZE)
        dump_zip64_end_of_central_directory(self.dumper, self.reader, offset, buffer)

        offset = self.reader.offset
        if self.reader.peek_signature() != ZIP64_END_OF_CENTRAL_DIR_LOCATOR:
            raise ExpectedZip64EndOfCentralDirectoryLocator(
                f"Expected zip64 end of central directory locator at 0x{offset:x}"
            )
        dump_zip64_locator(self.dumper, offset, self.reader.read_exact(ZIP64_LOCATOR_SIZE))

        offset = self.reader.offset
        if self.reader.peek_signature() != END_OF_CENTRAL_DIR:
            raise ExpectedEndOfCentralDirectoryRecord(
                f"Expected end of central directory record at 0x{offset:x}"
            )
        self._consume_end()

    def _consume_end(self) -> None:
        offset = self.reader.offset
        buffer = self.reader.read_exact(END_OF_CENTRAL_DIR_SIZE)
        dump_end_of_central_directory(self.dumper, self.reader, offset, buffer)

    def close(self) -> None:
        """Close the input file if this dumper opened it."""
        if self._should_close and self._file is not None:
            self._file.close()
            self._file = None

    def __enter__(self) -> "StreamingDumper":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()
