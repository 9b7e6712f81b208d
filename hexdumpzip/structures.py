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
ZIP structure definitions and parsing functions.

This module defines dataclasses for the fixed-size ZIP records, the segments
discovered by the random-access resolver, and the extra field sub-records,
together with the ZIP64 extended information resolution shared by both
dumping strategies.
"""

import struct
from dataclasses import dataclass
from typing import Iterator, Optional, Union

from .constants import (
    EXTRA_FIELD_HEADER_SIZE,
    FLAG_DATA_DESCRIPTOR,
    FLAG_UTF8,
    ZIP64_EXTRA_FIELD_TAG,
    ZIP64_TRUNCATED_16,
    ZIP64_TRUNCATED_32,
)
from .errors import (
    DuplicateZip64ExtendedInformation,
    ExtraFieldSizeExceedsExtraFieldsBuffer,
    Zip64ExtendedInformationTruncated,
)
from .utils import unpack_uint, unpack_uint16


@dataclass
class LocalFileHeader:
    """Local file header structure (fixed part).

    This header appears before each file's compressed data in the ZIP archive.
    """

    signature: int
    version: int
    flags: int
    compression_method: int
    mod_time: int
    mod_date: int
    crc32: int
    compressed_size: int
    uncompressed_size: int
    filename_len: int
    extra_len: int

    @property
    def is_utf8(self) -> bool:
        return bool(self.flags & FLAG_UTF8)

    @property
    def has_unknown_size(self) -> bool:
        """Whether sizes were unknown when the header was written (bit 3)."""
        return bool(self.flags & FLAG_DATA_DESCRIPTOR)


@dataclass
class CentralDirectoryHeader:
    """Central directory header structure (fixed part).

    This header appears in the central directory and contains information
    about a file entry, including a pointer to the local file header.
    """

    signature: int
    version_made_by: int
    version: int
    flags: int
    compression_method: int
    mod_time: int
    mod_date: int
    crc32: int
    compressed_size: int
    uncompressed_size: int
    filename_len: int
    extra_len: int
    comment_len: int
    disk_num: int
    internal_attrs: int
    external_attrs: int
    local_header_offset: int

    @property
    def is_utf8(self) -> bool:
        return bool(self.flags & FLAG_UTF8)

    @property
    def variable_len(self) -> int:
        """Combined length of the file name, extra fields and comment."""
        return self.filename_len + self.extra_len + self.comment_len


@dataclass
class EndOfCentralDirectory:
    """End of Central Directory record (fixed part)."""

    signature: int
    disk_num: int
    cd_disk: int
    cd_records_on_disk: int
    cd_records_total: int
    cd_size: int
    cd_offset: int
    comment_len: int


@dataclass
class Zip64EndOfCentralDirectory:
    """ZIP64 End of Central Directory record (fixed part)."""

    signature: int
    size: int
    version_made_by: int
    version_needed: int
    disk_num: int
    cd_disk: int
    cd_records_on_disk: int
    cd_records_total: int
    cd_size: int
    cd_offset: int


@dataclass
class Zip64Locator:
    """ZIP64 End of Central Directory Locator."""

    signature: int
    disk_num: int
    zip64_eocd_offset: int
    total_disks: int


_LOCAL_FILE_HEADER = struct.Struct("<IHHHHHIIIHH")
_CENTRAL_DIR_HEADER = struct.Struct("<IHHHHHHIIIHHHHHII")
_END_OF_CENTRAL_DIR = struct.Struct("<IHHHHIIH")
_ZIP64_END_OF_CENTRAL_DIR = struct.Struct("<IQHHIIQQQQ")
_ZIP64_LOCATOR = struct.Struct("<IIQI")


def parse_local_file_header(buffer: bytes) -> LocalFileHeader:
    """Parse the 30 fixed bytes of a local file header.

    The signature is returned as found; callers decide how to treat a mismatch.
    """
    return LocalFileHeader(*_LOCAL_FILE_HEADER.unpack_from(buffer))


def parse_central_directory_header(buffer: bytes) -> CentralDirectoryHeader:
    """Parse the 46 fixed bytes of a central directory header."""
    return CentralDirectoryHeader(*_CENTRAL_DIR_HEADER.unpack_from(buffer))


def parse_eocd(buffer: bytes) -> EndOfCentralDirectory:
    """Parse the 22 fixed bytes of an End of Central Directory record."""
    return EndOfCentralDirectory(*_END_OF_CENTRAL_DIR.unpack_from(buffer))


def parse_zip64_eocd(buffer: bytes) -> Zip64EndOfCentralDirectory:
    """Parse the 56 fixed bytes of a ZIP64 End of Central Directory record."""
    return Zip64EndOfCentralDirectory(*_ZIP64_END_OF_CENTRAL_DIR.unpack_from(buffer))


def parse_zip64_locator(buffer: bytes) -> Zip64Locator:
    """Parse the 20 bytes of a ZIP64 End of Central Directory Locator."""
    return Zip64Locator(*_ZIP64_LOCATOR.unpack_from(buffer))


# Segments found by the random-access resolver. The kind classes form a
# tagged union; the layout engine dispatches on their type.


@dataclass(frozen=True)
class LocalFile:
    """A local file header with its payload and optional data descriptor.

    Attributes:
        entry_index: Index of the central directory entry pointing here.
        compressed_size: Payload size with any ZIP64 override applied.
        is_zip64: Whether the central directory entry had ZIP64 information.
    """

    entry_index: int
    compressed_size: int
    is_zip64: bool


@dataclass(frozen=True)
class CentralDirectoryEntries:
    """The whole central directory block."""

    entry_count: int
    central_directory_size: int


@dataclass(frozen=True)
class Zip64Eocdr:
    """ZIP64 end of central directory record."""


@dataclass(frozen=True)
class Zip64Eocdl:
    """ZIP64 end of central directory locator."""


@dataclass(frozen=True)
class Eocdr:
    """End of central directory record."""


SegmentKind = Union[LocalFile, CentralDirectoryEntries, Zip64Eocdr, Zip64Eocdl, Eocdr]


@dataclass(frozen=True)
class Segment:
    """A structural region of the archive at an absolute offset."""

    offset: int
    kind: SegmentKind


@dataclass(frozen=True)
class ExtraField:
    """One tagged sub-record of an extra fields region.

    Attributes:
        tag: Header ID of the record.
        position: Offset of the record within the extra fields region.
        data: The whole record, 4-byte header included.
    """

    tag: int
    position: int
    data: bytes

    @property
    def payload(self) -> bytes:
        return self.data[EXTRA_FIELD_HEADER_SIZE:]


class ExtraFieldIterator:
    """Lazily iterate the records of an extra fields region.

    Iteration stops once fewer than 4 bytes remain; those bytes are the
    trailing padding.

    Raises:
        ExtraFieldSizeExceedsExtraFieldsBuffer: If a record's declared size
            runs past the end of the region.
    """

    def __init__(self, extra_fields: bytes):
        self.extra_fields = extra_fields
        self.cursor = 0

    def __iter__(self) -> Iterator[ExtraField]:
        return self

    def __next__(self) -> ExtraField:
        if self.cursor + EXTRA_FIELD_HEADER_SIZE > len(self.extra_fields):
            raise StopIteration
        tag = unpack_uint16(self.extra_fields, self.cursor)
        size = unpack_uint16(self.extra_fields, self.cursor + 2)
        end = self.cursor + EXTRA_FIELD_HEADER_SIZE + size
        if end > len(self.extra_fields):
            raise ExtraFieldSizeExceedsExtraFieldsBuffer(
                f"Extra field 0x{tag:04x} at {self.cursor} declares {size} bytes, "
                f"only {len(self.extra_fields) - self.cursor - EXTRA_FIELD_HEADER_SIZE} remain"
            )
        extra_field = ExtraField(tag=tag, position=self.cursor, data=self.extra_fields[self.cursor : end])
        self.cursor = end
        return extra_field

    def trailing_padding(self) -> bytes:
        """Bytes after the last well-formed record (valid once iteration stopped)."""
        return self.extra_fields[self.cursor :]


@dataclass(frozen=True)
class Zip64Override:
    """One 64-bit (or 32-bit disk number) value taken from a ZIP64 record.

    Attributes:
        key: Zip64Resolution attribute the value resolves.
        size: Width of the value in bytes.
        name: Field name used in the transcript.
        value: Decoded value.
    """

    key: str
    size: int
    name: str
    value: int


@dataclass(frozen=True)
class Zip64Resolution:
    """Values resolved from the ZIP64 extended information of one header.

    A field is None when the header did not flag it as truncated (or when the
    header has no such field). Callers merge it with the 32-bit header value.
    """

    uncompressed_size: Optional[int] = None
    compressed_size: Optional[int] = None
    local_header_offset: Optional[int] = None
    disk_number: Optional[int] = None
    saw_zip64: bool = False


def read_zip64_overrides(
    payload: bytes,
    uncompressed_size: int,
    compressed_size: int,
    local_header_offset: Optional[int] = None,
    disk_number: Optional[int] = None,
) -> list[Zip64Override]:
    """Decode the values of a ZIP64 extended information payload.

    Values are stored in the fixed order uncompressed size, compressed size,
    local header offset, disk number, and only for the header fields that
    hold their truncation marker. Headers without an offset or disk number
    (local file headers) pass None for those. The disk number is optional:
    it is decoded only if its 4 bytes are present.

    Args:
        payload: Record payload, without the 4-byte tag/size header.
        uncompressed_size: 32-bit value from the header.
        compressed_size: 32-bit value from the header.
        local_header_offset: 32-bit value from a central directory header.
        disk_number: 16-bit value from a central directory header.

    Returns:
        The overrides present, in storage order.

    Raises:
        Zip64ExtendedInformationTruncated: If a required size or offset is missing.
    """
    wanted = []
    if uncompressed_size == ZIP64_TRUNCATED_32:
        wanted.append(("uncompressed_size", 8, "Uncompressed Size"))
    if compressed_size == ZIP64_TRUNCATED_32:
        wanted.append(("compressed_size", 8, "Compressed Size"))
    if local_header_offset == ZIP64_TRUNCATED_32:
        wanted.append(("local_header_offset", 8, "Local File Header Offset"))

    overrides = []
    cursor = 0
    for key, size, name in wanted:
        if cursor + size > len(payload):
            raise Zip64ExtendedInformationTruncated(
                f"ZIP64 extended information of {len(payload)} bytes has no room for {name}"
            )
        overrides.append(Zip64Override(key, size, name, unpack_uint(payload, cursor, size)))
        cursor += size

    if disk_number == ZIP64_TRUNCATED_16 and cursor + 4 <= len(payload):
        overrides.append(Zip64Override("disk_number", 4, "Disk Number", unpack_uint(payload, cursor, 4)))
    return overrides


def resolve_zip64_extra_field(
    extra_fields: bytes,
    uncompressed_size: int,
    compressed_size: int,
    local_header_offset: Optional[int] = None,
    disk_number: Optional[int] = None,
) -> Zip64Resolution:
    """Resolve ZIP64 overrides from a whole extra fields region.

    Raises:
        ExtraFieldSizeExceedsExtraFieldsBuffer: If the region is malformed.
        DuplicateZip64ExtendedInformation: If two ZIP64 records are present.
        Zip64ExtendedInformationTruncated: If a required value is missing.
    """
    resolution = Zip64Resolution()
    for extra_field in ExtraFieldIterator(extra_fields):
        if extra_field.tag != ZIP64_EXTRA_FIELD_TAG:
            continue
        resolution = merge_zip64_record(
            resolution,
            read_zip64_overrides(
                extra_field.payload,
                uncompressed_size,
                compressed_size,
                local_header_offset,
                disk_number,
            ),
        )
    return resolution


def merge_zip64_record(resolution: Zip64Resolution, overrides: list[Zip64Override]) -> Zip64Resolution:
    """Fold the overrides of one ZIP64 record into a resolution.

    Raises:
        DuplicateZip64ExtendedInformation: If the resolution already saw a record.
    """
    if resolution.saw_zip64:
        raise DuplicateZip64ExtendedInformation(
            "Extra fields contain more than one ZIP64 extended information record"
        )
    values = {override.key: override.value for override in overrides}
    return Zip64Resolution(saw_zip64=True, **values)
