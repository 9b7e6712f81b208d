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
Record renderers shared by the random-access and streaming dumpers.

Every structure is rendered here, reading its variable-length parts through
a ByteSource. The random-access dumper serves reads by seeking; the streaming
dumper serves them from its forward-only reader. For a well-formed archive
the two transcripts therefore differ only in offset padding.
"""

from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from .constants import (
    BLOB_CHUNK_SIZE,
    CENTRAL_DIR_HEADER_SIZE,
    END_OF_CENTRAL_DIR_SIZE,
    EXTENDED_TIMESTAMP_EXTRA_FIELD_TAG,
    EXTRA_FIELD_NAMES,
    LOCAL_FILE_HEADER_SIZE,
    NTFS_EXTRA_FIELD_TAG,
    NTFS_TIMESTAMPS_ATTRIBUTE,
    NTFS_TIMESTAMPS_ATTRIBUTE_SIZE,
    UNICODE_PATH_EXTRA_FIELD_TAG,
    UNIX_UID_GID_EXTRA_FIELD_TAG,
    ZIP64_DATA_DESCRIPTOR_SIZE,
    ZIP64_END_OF_CENTRAL_DIR_BASE_SIZE,
    ZIP64_END_OF_CENTRAL_DIR_SIZE,
    ZIP64_EXTRA_FIELD_TAG,
    ZIP64_LOCATOR_SIZE,
)
from .hexdumper import (
    COMPACT_BLOB,
    CP437_BLOB,
    DEFAULT_BLOB,
    FIELD_WIDTHS,
    UTF8_BLOB,
    BlobConfig,
    BlobState,
    Hexdumper,
)
from .structures import (
    CentralDirectoryHeader,
    EndOfCentralDirectory,
    ExtraField,
    ExtraFieldIterator,
    LocalFileHeader,
    Zip64EndOfCentralDirectory,
    Zip64Resolution,
    merge_zip64_record,
    parse_central_directory_header,
    parse_eocd,
    parse_local_file_header,
    parse_zip64_eocd,
    read_zip64_overrides,
)
from .utils import unpack_uint16

FieldLayout = list[tuple[int, str]]

LOCAL_FILE_HEADER_FIELDS: FieldLayout = [
    (4, "Local file header signature"),
    (2, "Version needed to extract (minimum)"),
    (2, "General purpose bit flag"),
    (2, "Compression method"),
    (2, "File last modification time"),
    (2, "File last modification date"),
    (4, "CRC-32"),
    (4, "Compressed size"),
    (4, "Uncompressed size"),
    (2, "File name length (n)"),
    (2, "Extra field length (m)"),
]

CENTRAL_DIR_HEADER_FIELDS: FieldLayout = [
    (4, "Central directory file header signature"),
    (2, "Version made by"),
    (2, "Version needed to extract (minimum)"),
    (2, "General purpose bit flag"),
    (2, "Compression method"),
    (2, "File last modification time"),
    (2, "File last modification date"),
    (4, "CRC-32"),
    (4, "Compressed size"),
    (4, "Uncompressed size"),
    (2, "File name length (n)"),
    (2, "Extra field length (m)"),
    (2, "File comment length (k)"),
    (2, "Disk number where file starts"),
    (2, "Internal file attributes"),
    (4, "External file attributes"),
    (4, "Relative offset of local file header"),
]

DATA_DESCRIPTOR_FIELDS: FieldLayout = [
    (4, "optional data descriptor optional signature"),
    (4, "crc-32"),
    (4, "compressed size"),
    (4, "uncompressed size"),
]

ZIP64_DATA_DESCRIPTOR_FIELDS: FieldLayout = [
    (4, "optional data descriptor optional signature"),
    (4, "crc-32"),
    (8, "compressed size"),
    (8, "uncompressed size"),
]

ZIP64_END_OF_CENTRAL_DIR_FIELDS: FieldLayout = [
    (4, "zip64 end of central directory record signature"),
    (8, "size of zip64 end of central directory record"),
    (2, "version made by"),
    (2, "version needed to extract"),
    (4, "number of this disk"),
    (4, "number of the disk with the start of the central directory"),
    (8, "total number of entries in the central directory on this disk"),
    (8, "total number of entries in the central directory"),
    (8, "size of the central directory"),
    (8, "offset of start of central directory with respect to the starting disk number"),
]

ZIP64_LOCATOR_FIELDS: FieldLayout = [
    (4, "zip64 end of central dir locator signature"),
    (4, "number of the disk with the start of the zip64 end of central directory"),
    (8, "relative offset of the zip64 end of central directory record"),
    (4, "total number of disks"),
]

END_OF_CENTRAL_DIR_FIELDS: FieldLayout = [
    (4, "End of central directory signature"),
    (2, "Number of this disk"),
    (2, "Disk where central directory starts"),
    (2, "Number of central directory records on this disk"),
    (2, "Total number of central directory records"),
    (4, "Size of central directory (bytes)"),
    (4, "Offset of start of central directory, relative to start of archive"),
    (2, "Comment Length"),
]


class ByteSource(Protocol):
    """Archive bytes addressed by absolute offset."""

    def read(self, offset: int, size: int) -> bytes:
        """Return exactly 'size' bytes starting at 'offset'."""
        ...


@dataclass
class LocalFileRecord:
    """Result of rendering a local file header and its variable parts.

    Attributes:
        header: Parsed fixed part of the header.
        zip64: ZIP64 values found in the header's own extra fields.
        end: Offset just past the extra fields, where the payload starts.
    """

    header: LocalFileHeader
    zip64: Zip64Resolution
    end: int

    @property
    def compressed_size(self) -> int:
        if self.zip64.compressed_size is not None:
            return self.zip64.compressed_size
        return self.header.compressed_size


def dump_struct(dumper: Hexdumper, buffer: bytes, fields: FieldLayout, cursor: int = 0) -> int:
    """Render a sequence of fields, aligned to the widest of them."""
    if not fields:
        return cursor
    max_size = max(2, max(size for size, _ in fields))
    for size, name in fields:
        cursor = dumper.read_struct_field(buffer, max_size, cursor, size, name)
    return cursor


def dump_blob(dumper: Hexdumper, source: ByteSource, offset: int, length: int, config: BlobConfig) -> None:
    """Render 'length' bytes at 'offset' in bounded chunks."""
    state = BlobState()
    cursor = 0
    while cursor < length:
        chunk_len = min(BLOB_CHUNK_SIZE, length - cursor)
        chunk = source.read(offset + cursor, chunk_len)
        dumper.write_blob_part(chunk, config, cursor == 0, cursor + chunk_len == length, state)
        cursor += chunk_len


def dump_variable_region(
    dumper: Hexdumper,
    source: ByteSource,
    offset: int,
    length: int,
    label: str,
    config: BlobConfig,
) -> int:
    """Render a nested region (name, comment...) if it is non-empty.

    Returns:
        Offset just past the region.
    """
    if length > 0:
        with dumper.indented():
            dumper.write_section_header(offset, label)
            with dumper.indented():
                dump_blob(dumper, source, offset, length, config)
    return offset + length


def text_blob_config(is_utf8: bool) -> BlobConfig:
    return UTF8_BLOB if is_utf8 else CP437_BLOB


# Extra field payload layouts. Each returns the fields decoded from the
# start of a payload; whatever follows is rendered as a blob.


def _extended_timestamp_layout(payload: bytes) -> FieldLayout:
    if len(payload) < 1:
        return []
    flags = payload[0]
    layout = [(1, "Flags")]
    cursor = 1
    for bit, name in ((0x1, "Modification time"), (0x2, "Access time"), (0x4, "Creation time")):
        if not flags & bit:
            continue
        if cursor + 4 > len(payload):
            break
        layout.append((4, name))
        cursor += 4
    return layout


def _unix_uid_gid_layout(payload: bytes) -> FieldLayout:
    if len(payload) < 1:
        return []
    layout = [(1, "Version")]
    cursor = 1
    for label in ("UID", "GID"):
        if cursor >= len(payload):
            break
        size = payload[cursor]
        layout.append((1, f"{label} size"))
        cursor += 1
        if size not in FIELD_WIDTHS or cursor + size > len(payload):
            break
        layout.append((size, label))
        cursor += size
    return layout


def _unicode_path_layout(payload: bytes) -> FieldLayout:
    if len(payload) < 5:
        return []
    return [(1, "Version"), (4, "Name CRC-32")]


def _ntfs_layout(payload: bytes) -> FieldLayout:
    if len(payload) < 4:
        return []
    layout = [(4, "Reserved")]
    cursor = 4
    while cursor + 4 <= len(payload):
        tag = unpack_uint16(payload, cursor)
        size = unpack_uint16(payload, cursor + 2)
        layout += [(2, "Attribute tag"), (2, "Attribute size")]
        cursor += 4
        if (
            tag != NTFS_TIMESTAMPS_ATTRIBUTE
            or size != NTFS_TIMESTAMPS_ATTRIBUTE_SIZE
            or cursor + size > len(payload)
        ):
            break
        layout += [(8, "Modification time"), (8, "Access time"), (8, "Creation time")]
        cursor += size
    return layout


_EXTRA_FIELD_LAYOUTS: dict[int, tuple[Callable[[bytes], FieldLayout], BlobConfig]] = {
    EXTENDED_TIMESTAMP_EXTRA_FIELD_TAG: (_extended_timestamp_layout, DEFAULT_BLOB),
    UNIX_UID_GID_EXTRA_FIELD_TAG: (_unix_uid_gid_layout, DEFAULT_BLOB),
    UNICODE_PATH_EXTRA_FIELD_TAG: (_unicode_path_layout, UTF8_BLOB),
    NTFS_EXTRA_FIELD_TAG: (_ntfs_layout, DEFAULT_BLOB),
}


def _dump_extra_field(
    dumper: Hexdumper,
    offset: int,
    extra_field: ExtraField,
    layout: FieldLayout,
    leftover_config: BlobConfig,
) -> None:
    name = EXTRA_FIELD_NAMES.get(extra_field.tag, "Unknown Extra Field")
    dumper.write_section_header(offset + extra_field.position, f"{name} (0x{extra_field.tag:04x})")
    with dumper.indented():
        cursor = dump_struct(dumper, extra_field.data, [(2, "Tag"), (2, "Size")])
        cursor = dump_struct(dumper, extra_field.data, layout, cursor)
        leftover = extra_field.data[cursor:]
        if leftover:
            dumper.write_blob(leftover, leftover_config if layout else DEFAULT_BLOB)


def dump_extra_fields(
    dumper: Hexdumper,
    offset: int,
    buffer: bytes,
    uncompressed_size: int,
    compressed_size: int,
    local_header_offset: Optional[int] = None,
    disk_number: Optional[int] = None,
) -> Zip64Resolution:
    """Render every record of an extra fields region and resolve ZIP64 values.

    The header values are used only to decide which ZIP64 overrides are
    present; local file headers pass None for the offset and disk number.

    Args:
        dumper: Transcript writer, indented for the records.
        offset: Absolute offset of the region.
        buffer: The whole region.
        uncompressed_size: 32-bit value from the owning header.
        compressed_size: 32-bit value from the owning header.
        local_header_offset: 32-bit value from a central directory header.
        disk_number: 16-bit value from a central directory header.

    Returns:
        The ZIP64 values found, unresolved fields left as None.

    Raises:
        ExtraFieldSizeExceedsExtraFieldsBuffer: If a record overruns the region.
        DuplicateZip64ExtendedInformation: If two ZIP64 records are present.
        Zip64ExtendedInformationTruncated: If a required ZIP64 value is missing.
    """
    resolution = Zip64Resolution()
    iterator = ExtraFieldIterator(buffer)
    for extra_field in iterator:
        if extra_field.tag == ZIP64_EXTRA_FIELD_TAG:
            overrides = read_zip64_overrides(
                extra_field.payload,
                uncompressed_size,
                compressed_size,
                local_header_offset,
                disk_number,
            )
            resolution = merge_zip64_record(resolution, overrides)
            layout = [(override.size, override.name) for override in overrides]
            _dump_extra_field(dumper, offset, extra_field, layout, DEFAULT_BLOB)
            continue

        layout_fn, leftover_config = _EXTRA_FIELD_LAYOUTS.get(extra_field.tag, (None, DEFAULT_BLOB))
        layout = layout_fn(extra_field.payload) if layout_fn else []
        _dump_extra_field(dumper, offset, extra_field, layout, leftover_config)

    padding = iterator.trailing_padding()
    if padding:
        dumper.write_section_header(offset + iterator.cursor, "(unused space)")
        with dumper.indented():
            dumper.write_blob(padding)
    return resolution


def dump_extra_fields_region(
    dumper: Hexdumper,
    source: ByteSource,
    offset: int,
    length: int,
    uncompressed_size: int,
    compressed_size: int,
    local_header_offset: Optional[int] = None,
    disk_number: Optional[int] = None,
) -> Zip64Resolution:
    """Render the 'Extra Fields' region of a header, if non-empty."""
    if length == 0:
        return Zip64Resolution()
    buffer = source.read(offset, length)
    with dumper.indented():
        dumper.write_section_header(offset, "Extra Fields")
        with dumper.indented():
            return dump_extra_fields(
                dumper,
                offset,
                buffer,
                uncompressed_size,
                compressed_size,
                local_header_offset,
                disk_number,
            )


def dump_local_file_header(
    dumper: Hexdumper,
    source: ByteSource,
    offset: int,
    buffer: bytes,
    entry_index: int,
) -> LocalFileRecord:
    """Render a local file header with its file name and extra fields.

    Args:
        dumper: Transcript writer.
        source: Reader for the variable-length parts.
        offset: Absolute offset of the header.
        buffer: The 30 fixed bytes, signature already checked.
        entry_index: Number shown in the section label.

    Returns:
        The parsed header, the ZIP64 values of its extra fields and the
        offset where the payload starts.
    """
    header = parse_local_file_header(buffer)
    dumper.write_section_header(offset, f"Local File Header (#{entry_index})")
    dump_struct(dumper, buffer, LOCAL_FILE_HEADER_FIELDS)

    cursor = offset + LOCAL_FILE_HEADER_SIZE
    cursor = dump_variable_region(
        dumper, source, cursor, header.filename_len, "File Name", text_blob_config(header.is_utf8)
    )
    zip64 = dump_extra_fields_region(
        dumper,
        source,
        cursor,
        header.extra_len,
        header.uncompressed_size,
        header.compressed_size,
    )
    return LocalFileRecord(header=header, zip64=zip64, end=cursor + header.extra_len)


def dump_file_contents(dumper: Hexdumper, source: ByteSource, offset: int, length: int) -> int:
    """Render a payload of known length; returns the offset past it."""
    if length > 0:
        dumper.write_section_header(offset, "File Contents")
        dump_blob(dumper, source, offset, length, COMPACT_BLOB)
    return offset + length


def dump_data_descriptor(dumper: Hexdumper, offset: int, buffer: bytes) -> int:
    """Render a 16-byte or 24-byte (ZIP64) data descriptor; returns its length."""
    dumper.write_section_header(offset, "Optional Data Descriptor")
    if len(buffer) == ZIP64_DATA_DESCRIPTOR_SIZE:
        return dump_struct(dumper, buffer, ZIP64_DATA_DESCRIPTOR_FIELDS)
    return dump_struct(dumper, buffer, DATA_DESCRIPTOR_FIELDS)


def dump_central_directory_header(
    dumper: Hexdumper,
    source: ByteSource,
    offset: int,
    buffer: bytes,
    entry_index: int,
) -> tuple[CentralDirectoryHeader, Zip64Resolution, int]:
    """Render one central directory entry with its variable parts.

    Returns:
        The parsed header, its ZIP64 resolution and the offset past the entry.
    """
    header = parse_central_directory_header(buffer)
    dumper.write_section_header(offset, f"Central Directory Entry (#{entry_index})")
    dump_struct(dumper, buffer, CENTRAL_DIR_HEADER_FIELDS)

    text_config = text_blob_config(header.is_utf8)
    cursor = offset + CENTRAL_DIR_HEADER_SIZE
    cursor = dump_variable_region(dumper, source, cursor, header.filename_len, "File Name", text_config)
    zip64 = dump_extra_fields_region(
        dumper,
        source,
        cursor,
        header.extra_len,
        header.uncompressed_size,
        header.compressed_size,
        header.local_header_offset,
        header.disk_num,
    )
    cursor += header.extra_len
    cursor = dump_variable_region(dumper, source, cursor, header.comment_len, "File Comment", text_config)
    return header, zip64, cursor


def dump_zip64_end_of_central_directory(
    dumper: Hexdumper,
    source: ByteSource,
    offset: int,
    buffer: bytes,
) -> tuple[Zip64EndOfCentralDirectory, int]:
    """Render a ZIP64 end of central directory record and its extensible data.

    Returns:
        The parsed record and the offset past it.
    """
    record = parse_zip64_eocd(buffer)
    dumper.write_section_header(offset, "zip64 end of central directory record")
    dump_struct(dumper, buffer, ZIP64_END_OF_CENTRAL_DIR_FIELDS)

    cursor = offset + ZIP64_END_OF_CENTRAL_DIR_SIZE
    extensible_size = max(0, record.size - ZIP64_END_OF_CENTRAL_DIR_BASE_SIZE)
    cursor = dump_variable_region(
        dumper, source, cursor, extensible_size, "zip64 extensible data sector", COMPACT_BLOB
    )
    return record, cursor


def dump_zip64_locator(dumper: Hexdumper, offset: int, buffer: bytes) -> int:
    """Render a ZIP64 end of central directory locator; returns the offset past it."""
    dumper.write_section_header(offset, "zip64 end of central directory locator")
    dump_struct(dumper, buffer, ZIP64_LOCATOR_FIELDS)
    return offset + ZIP64_LOCATOR_SIZE


def dump_end_of_central_directory(
    dumper: Hexdumper,
    source: ByteSource,
    offset: int,
    buffer: bytes,
) -> tuple[EndOfCentralDirectory, int]:
    """Render the end of central directory record and the archive comment.

    Returns:
        The parsed record and the offset past the comment.
    """
    record = parse_eocd(buffer)
    dumper.write_section_header(offset, "End of central directory record")
    dump_struct(dumper, buffer, END_OF_CENTRAL_DIR_FIELDS)

    cursor = offset + END_OF_CENTRAL_DIR_SIZE
    cursor = dump_variable_region(dumper, source, cursor, record.comment_len, ".ZIP file comment", CP437_BLOB)
    return record, cursor
