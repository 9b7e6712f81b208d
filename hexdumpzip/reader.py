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
Random-access ZIP dumper.

This module provides the ZipfileDumper class, which locates the end of
central directory record, follows the ZIP64 redirection, walks the central
directory to discover every structure of the archive and renders them in
file order.
"""

import logging
from typing import BinaryIO, Optional, TextIO

from .constants import (
    CENTRAL_DIR_HEADER,
    CENTRAL_DIR_HEADER_SIZE,
    DATA_DESCRIPTOR,
    DATA_DESCRIPTOR_SIZE,
    END_OF_CENTRAL_DIR_BYTES,
    END_OF_CENTRAL_DIR_SIZE,
    LOCAL_FILE_HEADER,
    LOCAL_FILE_HEADER_SIZE,
    MAX_COMMENT_LENGTH,
    MAX_FILE_SIZE,
    EOCDR_SEARCH_SIZE,
    ZIP64_DATA_DESCRIPTOR_SIZE,
    ZIP64_END_OF_CENTRAL_DIR,
    ZIP64_END_OF_CENTRAL_DIR_LOCATOR,
    ZIP64_END_OF_CENTRAL_DIR_SIZE,
    ZIP64_LOCATOR_SIZE,
)
from .errors import (
    CentralDirectorySizeExceedsFileBounds,
    FileTooBig,
    MultiDiskZipfileNotSupported,
    NotAZipFile,
    UnexpectedEndOfFile,
    ZipFormatError,
)
from .hexdumper import Hexdumper
from .layout import SegmentLayout
from .records import (
    dump_central_directory_header,
    dump_data_descriptor,
    dump_end_of_central_directory,
    dump_file_contents,
    dump_local_file_header,
    dump_zip64_end_of_central_directory,
    dump_zip64_locator,
)
from .structures import (
    CentralDirectoryEntries,
    Eocdr,
    LocalFile,
    Segment,
    Zip64Eocdl,
    Zip64Eocdr,
    parse_central_directory_header,
    parse_eocd,
    parse_zip64_eocd,
    parse_zip64_locator,
    resolve_zip64_extra_field,
)
from .utils import get_file_size, hex_width, read_at, unpack_uint32

logger = logging.getLogger(__name__)


class ZipfileDumper:
    """Random-access dumper for ZIP and ZIP64 archives.

    Every byte of the input appears exactly once in the transcript, either
    inside a structure or as "(unused space)".

    Example:
        with ZipfileDumper("archive.zip", sys.stdout) as dumper:
            dumper.dump()
    """

    def __init__(self, input_file: str | BinaryIO, output: TextIO):
        """Initialize ZipfileDumper with a file path or seekable file-like object.

        Args:
            input_file: Path to the archive or binary file-like object
                supporting read(), seek() and tell().
            output: Text sink receiving the transcript.

        Raises:
            FileTooBig: If the file is larger than 0x7FFFFFFFFFFFFFFF bytes.
            ZipFormatError: If the file-like object is not seekable.
        """
        if hasattr(input_file, "__fspath__"):
            input_file = str(input_file)

        if isinstance(input_file, str):
            self._file = open(input_file, "rb")
            self._should_close = True
        else:
            for method in ("read", "seek", "tell"):
                if not hasattr(input_file, method):
                    raise ZipFormatError(f"File-like object must have a {method}() method")
            self._file = input_file
            self._should_close = False

        try:
            self.file_size = get_file_size(self._file)
            if self.file_size > MAX_FILE_SIZE:
                raise FileTooBig(f"File size {self.file_size} exceeds 0x{MAX_FILE_SIZE:x} bytes")
        except Exception:
            self.close()
            raise

        self.dumper = Hexdumper(output, offset_width=hex_width(self.file_size))
        self.segments: list[Segment] = []

    def read(self, offset: int, size: int) -> bytes:
        """Read exactly 'size' bytes at 'offset'.

        Raises:
            UnexpectedEndOfFile: If the file ends first.
        """
        return read_at(self._file, offset, size)

    def _try_read(self, offset: int, size: int) -> Optional[bytes]:
        # A short read here means the optional structure is absent.
        try:
            return self.read(offset, size)
        except UnexpectedEndOfFile:
            return None

    def dump(self) -> None:
        """Discover all structures, then render them."""
        self.find_segments()
        self.dump_segments()

    def _find_eocdr(self) -> tuple[int, bytes]:
        """Locate the End of Central Directory record.

        Scans backward over at most a maximal comment, taking the candidate
        closest to the end of the file.

        Returns:
            The record's offset and the tail of the file it was found in.

        Raises:
            NotAZipFile: If no record is found.
        """
        if self.file_size < END_OF_CENTRAL_DIR_SIZE:
            raise NotAZipFile(
                f"File of {self.file_size} bytes is too small to hold an end of central directory record"
            )

        search_len = min(self.file_size, EOCDR_SEARCH_SIZE)
        search_offset = self.file_size - search_len
        tail = self.read(search_offset, search_len)

        first_candidate = max(0, search_len - END_OF_CENTRAL_DIR_SIZE - MAX_COMMENT_LENGTH)
        last_candidate = search_len - END_OF_CENTRAL_DIR_SIZE
        pos = tail.rfind(END_OF_CENTRAL_DIR_BYTES, first_candidate, last_candidate + 4)
        if pos == -1:
            raise NotAZipFile("End of central directory record not found")

        eocdr_offset = search_offset + pos
        logger.debug("End of central directory record at 0x%x", eocdr_offset)
        return eocdr_offset, tail[: pos + END_OF_CENTRAL_DIR_SIZE]

    def find_segments(self) -> list[Segment]:
        """Build the unordered segment set of the archive.

        Returns:
            The discovered segments, also kept on the instance.

        Raises:
            NotAZipFile: If no end of central directory record is found.
            MultiDiskZipfileNotSupported: If the archive spans several disks.
            CentralDirectorySizeExceedsFileBounds: If the central directory
                extends beyond the end of the file.
            ExtraFieldError: If a central directory entry's extra fields are malformed.
            UnexpectedEndOfFile: If a required structure is cut short.
        """
        self.segments = []
        eocdr_offset, tail = self._find_eocdr()
        eocdr_pos = len(tail) - END_OF_CENTRAL_DIR_SIZE
        eocd = parse_eocd(tail[eocdr_pos:])

        disk_number = eocd.disk_num
        entry_count = eocd.cd_records_total
        cd_size = eocd.cd_size
        cd_offset = eocd.cd_offset

        if eocdr_pos >= ZIP64_LOCATOR_SIZE:
            locator = parse_zip64_locator(tail[eocdr_pos - ZIP64_LOCATOR_SIZE : eocdr_pos])
            if locator.signature == ZIP64_END_OF_CENTRAL_DIR_LOCATOR:
                if locator.total_disks != 1:
                    raise MultiDiskZipfileNotSupported(
                        f"ZIP64 locator declares {locator.total_disks} disks"
                    )
                zip64_offset = locator.zip64_eocd_offset
                zip64 = parse_zip64_eocd(self.read(zip64_offset, ZIP64_END_OF_CENTRAL_DIR_SIZE))
                if zip64.signature != ZIP64_END_OF_CENTRAL_DIR:
                    logger.warning(
                        "Invalid zip64 end of central directory record signature 0x%08x at 0x%x",
                        zip64.signature,
                        zip64_offset,
                    )
                logger.debug("zip64 end of central directory record at 0x%x", zip64_offset)

                disk_number = zip64.disk_num
                entry_count = zip64.cd_records_total
                cd_size = zip64.cd_size
                cd_offset = zip64.cd_offset

                self.segments.append(Segment(zip64_offset, Zip64Eocdr()))
                self.segments.append(Segment(eocdr_offset - ZIP64_LOCATOR_SIZE, Zip64Eocdl()))

        if disk_number != 0:
            raise MultiDiskZipfileNotSupported(f"Archive is on disk {disk_number}")
        cd_end = cd_offset + cd_size
        if cd_end > self.file_size:
            raise CentralDirectorySizeExceedsFileBounds(
                f"Central directory at 0x{cd_offset:x} of {cd_size} bytes "
                f"exceeds file size {self.file_size}"
            )

        cursor = cd_offset
        entry_index = 0
        while entry_index < entry_count and cursor + CENTRAL_DIR_HEADER_SIZE <= cd_end:
            header = parse_central_directory_header(self.read(cursor, CENTRAL_DIR_HEADER_SIZE))
            cursor += CENTRAL_DIR_HEADER_SIZE + header.filename_len
            extra_fields = self.read(cursor, header.extra_len)
            zip64_resolution = resolve_zip64_extra_field(
                extra_fields,
                header.uncompressed_size,
                header.compressed_size,
                header.local_header_offset,
                header.disk_num,
            )
            cursor += header.extra_len + header.comment_len

            compressed_size = header.compressed_size
            if zip64_resolution.compressed_size is not None:
                compressed_size = zip64_resolution.compressed_size
            local_header_offset = header.local_header_offset
            if zip64_resolution.local_header_offset is not None:
                local_header_offset = zip64_resolution.local_header_offset

            self.segments.append(
                Segment(
                    local_header_offset,
                    LocalFile(
                        entry_index=entry_index,
                        compressed_size=compressed_size,
                        is_zip64=zip64_resolution.saw_zip64,
                    ),
                )
            )
            entry_index += 1

        if entry_count > 0:
            self.segments.append(Segment(cd_offset, CentralDirectoryEntries(entry_count, cd_size)))
        self.segments.append(Segment(eocdr_offset, Eocdr()))

        logger.debug("Found %d segments (%d entries)", len(self.segments), entry_index)
        return self.segments

    def dump_segments(self) -> None:
        """Render the segments found by find_segments() in file order.

        Raises:
            OverlappingSegments: If two segments claim the same bytes.
        """
        SegmentLayout(self.segments).dump(self.dumper, self, self._dump_segment, self.file_size)

    def _dump_segment(self, segment: Segment) -> int:
        kind = segment.kind
        if isinstance(kind, LocalFile):
            return self._dump_local_file(segment.offset, kind)
        if isinstance(kind, CentralDirectoryEntries):
            return self._dump_central_directory_entries(segment.offset, kind)
        if isinstance(kind, Zip64Eocdr):
            buffer = self.read(segment.offset, ZIP64_END_OF_CENTRAL_DIR_SIZE)
            _, end = dump_zip64_end_of_central_directory(self.dumper, self, segment.offset, buffer)
            return end - segment.offset
        if isinstance(kind, Zip64Eocdl):
            buffer = self.read(segment.offset, ZIP64_LOCATOR_SIZE)
            return dump_zip64_locator(self.dumper, segment.offset, buffer) - segment.offset
        if isinstance(kind, Eocdr):
            buffer = self.read(segment.offset, END_OF_CENTRAL_DIR_SIZE)
            _, end = dump_end_of_central_directory(self.dumper, self, segment.offset, buffer)
            return end - segment.offset
        raise TypeError(f"Unknown segment kind: {kind!r}")

    def _dump_local_file(self, offset: int, info: LocalFile) -> int:
        """Render a local file header, its payload and optional data descriptor.

        Returns:
            Bytes consumed, or 0 if the signature is wrong.
        """
        buffer = self.read(offset, LOCAL_FILE_HEADER_SIZE)
        signature = unpack_uint32(buffer, 0)
        if signature != LOCAL_FILE_HEADER:
            logger.warning("Invalid local file header signature 0x%08x at 0x%x", signature, offset)
            self.dumper.write_section_header(offset, "WARNING: invalid local file header signature")
            return 0

        record = dump_local_file_header(self.dumper, self, offset, buffer, info.entry_index)
        cursor = dump_file_contents(self.dumper, self, record.end, info.compressed_size)

        descriptor_size = ZIP64_DATA_DESCRIPTOR_SIZE if info.is_zip64 else DATA_DESCRIPTOR_SIZE
        descriptor = self._try_read(cursor, descriptor_size)
        if descriptor is not None and unpack_uint32(descriptor, 0) == DATA_DESCRIPTOR:
            cursor += dump_data_descriptor(self.dumper, cursor, descriptor)
        return cursor - offset

    def _dump_central_directory_entries(self, offset: int, info: CentralDirectoryEntries) -> int:
        """Render the central directory entries.

        Stops at the declared entry count or the end of the directory,
        whichever comes first, or at the first invalid signature.

        Returns:
            Bytes consumed by the entries rendered.
        """
        cd_end = offset + info.central_directory_size
        cursor = offset
        entry_index = 0
        while entry_index < info.entry_count and cursor + CENTRAL_DIR_HEADER_SIZE <= cd_end:
            buffer = self.read(cursor, CENTRAL_DIR_HEADER_SIZE)
            signature = unpack_uint32(buffer, 0)
            if signature != CENTRAL_DIR_HEADER:
                logger.warning("Invalid central file header signature 0x%08x at 0x%x", signature, cursor)
                self.dumper.write_section_header(cursor, "WARNING: invalid central file header signature")
                break
            _, _, cursor = dump_central_directory_header(self.dumper, self, cursor, buffer, entry_index)
            entry_index += 1
        return cursor - offset

    def close(self) -> None:
        """Close the input file if this dumper opened it."""
        if self._should_close and self._file is not None:
            self._file.close()
            self._file = None

    def __enter__(self) -> "ZipfileDumper":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()
