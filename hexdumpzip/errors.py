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
Custom exception classes for hexdump-zip.

This module defines specific exception types for the conditions that abort
a dump. Every error is fatal: a run either completes or raises one of these.
"""


class ZipDumpError(Exception):
    """Base exception class for all dump errors."""

    pass


class ZipFormatError(ZipDumpError):
    """Raised when an archive has an invalid format or structure.

    This exception is raised when:
    - Required structures are missing
    - Declared offsets or sizes point outside the file
    - Structures overlap each other
    """

    pass


class ZipUnsupportedFeature(ZipDumpError):
    """Raised when encountering an archive this tool does not handle.

    This exception is raised when:
    - The archive spans multiple disks
    - The file is too large to address safely
    """

    pass


class NotAZipFile(ZipFormatError):
    """No end of central directory record was found."""

    pass


class CentralDirectorySizeExceedsFileBounds(ZipFormatError):
    """The central directory offset plus its size lies beyond the end of file."""

    pass


class OverlappingSegments(ZipFormatError):
    """Two discovered structures claim the same bytes of the archive.

    Attributes:
        offset: Offset of the structure that starts inside the previous one.
        cursor: Offset where the previous structure ended.
    """

    def __init__(self, offset: int, cursor: int):
        self.offset = offset
        self.cursor = cursor
        super().__init__(
            f"Structure at 0x{offset:x} overlaps the previous structure, "
            f"which ends at 0x{cursor:x}"
        )


class UnexpectedEndOfFile(ZipFormatError):
    """A required structure was cut short by the end of the input."""

    pass


class FileTooBig(ZipUnsupportedFeature):
    """The file size exceeds the signed 63-bit safety limit."""

    pass


class MultiDiskZipfileNotSupported(ZipUnsupportedFeature):
    """The archive declares more than one disk."""

    pass


class ExtraFieldError(ZipFormatError):
    """Base class for malformed extra field regions."""

    pass


class ExtraFieldSizeExceedsExtraFieldsBuffer(ExtraFieldError):
    """An extra field record declares more bytes than the region holds."""

    pass


class DuplicateZip64ExtendedInformation(ExtraFieldError):
    """A second ZIP64 extended information record appeared in one entry."""

    pass


class Zip64ExtendedInformationTruncated(ExtraFieldError):
    """A ZIP64 extended information record is missing a required value."""

    pass


class StreamingError(ZipFormatError):
    """Base class for protocol violations found by the streaming walker."""

    pass


class WrongSignature(StreamingError):
    """A signature is unknown or not allowed at the current position.

    Attributes:
        signature: The 32-bit signature that was read.
        offset: Offset of the signature in the input.
    """

    def __init__(self, signature: int, offset: int, position: str):
        self.signature = signature
        self.offset = offset
        super().__init__(
            f"Unexpected signature 0x{signature:08x} at 0x{offset:x} "
            f"(position: {position})"
        )


class ExpectedZip64EndOfCentralDirectoryLocator(StreamingError):
    """The ZIP64 end of central directory record is not followed by its locator."""

    pass


class ExpectedEndOfCentralDirectoryRecord(StreamingError):
    """The ZIP64 locator is not followed by the end of central directory record."""

    pass


class ExpectedEof(StreamingError):
    """Bytes remain after the end of central directory record."""

    pass
