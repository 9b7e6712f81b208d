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
ZIP format constants including signatures, record sizes, flags and extra field tags.

This module defines all the constants used throughout hexdump-zip for locating
and annotating the structures of ZIP and ZIP64 archives.
"""

# ZIP file signatures (magic numbers)
LOCAL_FILE_HEADER = 0x04034B50  # "PK\x03\x04"
CENTRAL_DIR_HEADER = 0x02014B50  # "PK\x01\x02"
END_OF_CENTRAL_DIR = 0x06054B50  # "PK\x05\x06"
ZIP64_END_OF_CENTRAL_DIR = 0x06064B50  # "PK\x06\x06"
ZIP64_END_OF_CENTRAL_DIR_LOCATOR = 0x07064B50  # "PK\x06\x07"
DATA_DESCRIPTOR = 0x08074B50  # "PK\x07\x08"

# Signatures as they appear on disk, used by byte scans
DATA_DESCRIPTOR_BYTES = b"PK\x07\x08"
END_OF_CENTRAL_DIR_BYTES = b"PK\x05\x06"

# General purpose bit flags
FLAG_DATA_DESCRIPTOR = 0x0008  # Sizes unknown when the local header was written
FLAG_UTF8 = 0x0800  # UTF-8 encoding for filename/comment

# Markers for fields that were moved into the ZIP64 extra field
ZIP64_TRUNCATED_32 = 0xFFFFFFFF
ZIP64_TRUNCATED_16 = 0xFFFF

# Local file header size (fixed part)
LOCAL_FILE_HEADER_SIZE = 30

# Central directory header size (fixed part, excluding filename/extra/comment)
CENTRAL_DIR_HEADER_SIZE = 46

# End of central directory size (fixed part, excluding comment)
END_OF_CENTRAL_DIR_SIZE = 22

# ZIP64 end of central directory size (fixed part)
ZIP64_END_OF_CENTRAL_DIR_SIZE = 56

# Value of the "size of zip64 end of central directory record" field when
# no extensible data sector follows (the record minus its first 12 bytes)
ZIP64_END_OF_CENTRAL_DIR_BASE_SIZE = 44

# ZIP64 locator size (fixed part)
ZIP64_LOCATOR_SIZE = 20

# Data descriptor sizes, signature included
DATA_DESCRIPTOR_SIZE = 16
ZIP64_DATA_DESCRIPTOR_SIZE = 24

# Extra field sub-record header: 2-byte tag + 2-byte size
EXTRA_FIELD_HEADER_SIZE = 4

# Maximum length of the archive comment
MAX_COMMENT_LENGTH = 0xFFFF

# Tail of the file that can hold the locator, the EOCDR and a maximal comment
EOCDR_SEARCH_SIZE = ZIP64_LOCATOR_SIZE + MAX_COMMENT_LENGTH + END_OF_CENTRAL_DIR_SIZE

# Largest file size accepted; keeps every offset inside a signed 64-bit range
MAX_FILE_SIZE = 0x7FFFFFFFFFFFFFFF

# Extra field tags
ZIP64_EXTRA_FIELD_TAG = 0x0001
NTFS_EXTRA_FIELD_TAG = 0x000A
EXTENDED_TIMESTAMP_EXTRA_FIELD_TAG = 0x5455
UNICODE_PATH_EXTRA_FIELD_TAG = 0x7075
UNIX_UID_GID_EXTRA_FIELD_TAG = 0x7875

EXTRA_FIELD_NAMES = {
    ZIP64_EXTRA_FIELD_TAG: "ZIP64 Extended Information Extra Field",
    NTFS_EXTRA_FIELD_TAG: "NTFS Extra Field",
    EXTENDED_TIMESTAMP_EXTRA_FIELD_TAG: "Info-ZIP Extended Timestamp Extra Field",
    UNICODE_PATH_EXTRA_FIELD_TAG: "Info-ZIP Unicode Path Extra Field",
    UNIX_UID_GID_EXTRA_FIELD_TAG: "Info-ZIP Unix UID/GID Extra Field",
}

# NTFS extra field attribute carrying the three FILETIME stamps
NTFS_TIMESTAMPS_ATTRIBUTE = 0x0001
NTFS_TIMESTAMPS_ATTRIBUTE_SIZE = 24

# Rendering parameters
BLOB_ROW_LENGTH = 16
COMPACT_ROW_LENGTH = 512
BLOB_CHUNK_SIZE = 0x1000  # Bounded read size for blobs; a multiple of both row lengths
