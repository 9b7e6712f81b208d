import io
import zipfile

import pytest

from builders import (
    FLAG_UTF8,
    Entry,
    build_archive,
    central_directory_header,
    end_of_central_directory,
    extra_field,
    local_file_header,
    normalize_offsets,
    section_labels,
    transcript_bytes,
    zip64_end_of_central_directory,
    zip64_locator,
)
from hexdumpzip import StreamingDumper, dump_zipfile
from hexdumpzip.errors import (
    ExpectedEndOfCentralDirectoryRecord,
    ExpectedEof,
    ExpectedZip64EndOfCentralDirectoryLocator,
    UnexpectedEndOfFile,
    WrongSignature,
)
from hexdumpzip.stream import PushbackReader


class ForwardOnly:
    """File-like object without seek() or tell()."""

    def __init__(self, data: bytes):
        self._buffer = io.BytesIO(data)

    def read(self, size=-1):
        return self._buffer.read(size)


def stream(archive: bytes) -> str:
    output = io.StringIO()
    StreamingDumper(ForwardOnly(archive), output).dump()
    return output.getvalue()


def random_access(archive: bytes) -> str:
    output = io.StringIO()
    dump_zipfile(io.BytesIO(archive), output)
    return output.getvalue()


def zipfile_archive() -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as z:
        z.writestr("readme.txt", "hello " * 100)
        z.writestr("dir/", "")
        z.writestr("naïve/ファイル.bin", bytes(range(256)) * 20)
        z.comment = b"made by zipfile"
    return buffer.getvalue()


# --- PushbackReader ---

def test_pushback_reader_offsets():
    reader = PushbackReader(io.BytesIO(b"PK\x03\x04rest"))
    assert reader.peek_signature() == 0x04034B50
    assert reader.offset == 0
    assert reader.peek_signature() == 0x04034B50
    assert reader.read_exact(6) == b"PK\x03\x04re"
    assert reader.offset == 6
    assert reader.peek_signature() is None
    assert reader.offset == 6
    assert not reader.at_eof()
    assert reader.read_exact(2) == b"st"
    assert reader.at_eof()


def test_pushback_reader_partial_drain():
    reader = PushbackReader(io.BytesIO(b"abcdef"))
    reader.peek_signature()
    assert reader.read_byte() == ord("a")
    assert reader.offset == 1
    assert reader.read_exact(4) == b"bcde"
    assert reader.read_byte() == ord("f")
    assert reader.read_byte() is None


def test_pushback_reader_is_forward_only():
    reader = PushbackReader(io.BytesIO(b"abcdef"))
    reader.read_exact(2)
    with pytest.raises(ValueError):
        reader.read(0, 2)
    assert reader.read(2, 2) == b"cd"


def test_pushback_slot_holds_one_signature():
    reader = PushbackReader(io.BytesIO(b""))
    reader.push_back(b"PK")
    with pytest.raises(ValueError):
        reader.push_back(b"PK")


def test_pushback_reader_short_read():
    reader = PushbackReader(io.BytesIO(b"abc"))
    with pytest.raises(UnexpectedEndOfFile):
        reader.read_exact(4)


# --- Mode equivalence ---

EQUIVALENT_ARCHIVES = {
    "empty": end_of_central_directory(0, 0, 0),
    "single": build_archive([Entry(b"hello", b"world")]),
    "utf8": build_archive([Entry("ü/名前.txt".encode(), b"data", flags=FLAG_UTF8, comment="é".encode())]),
    "extra": build_archive(
        [Entry(b"a", b"b", extra=extra_field(0x5455, b"\x01\x00\x00\x00\x5f") + b"\x00")],
        comment=b"comment",
    ),
    "descriptor": build_archive([Entry(b"a", b"payload", descriptor=True), Entry(b"b", b"", descriptor=True)]),
    "partial-signatures": build_archive([Entry(b"a", b"xxPK\x07yyPPK\x07zzPK", descriptor=True)]),
    "long-unknown-size": build_archive([Entry(b"big", (b"PK\x07" + b"a" * 13) * 600, descriptor=True)]),
    "zip64": build_archive(
        [Entry(b"a", b"one"), Entry(b"b", b"two", descriptor=True)],
        zip64=True,
        extensible=b"\x01\x02\x03",
    ),
    "zipfile": zipfile_archive(),
}


@pytest.mark.parametrize("name", sorted(EQUIVALENT_ARCHIVES))
def test_streaming_matches_random_access(name):
    archive = EQUIVALENT_ARCHIVES[name]
    streamed = stream(archive)
    assert streamed == normalize_offsets(random_access(archive))
    assert transcript_bytes(streamed) == archive


def test_streaming_offsets_are_not_padded():
    out = stream(build_archive([Entry(b"hello", b"world")]))
    assert out.startswith(":0x0 ; Local File Header (#0)\n")


def test_local_headers_are_numbered_in_file_order():
    out = stream(build_archive([Entry(b"a", b"1"), Entry(b"b", b"2")]))
    labels = section_labels(out)
    assert "Local File Header (#1)" in labels
    assert "Central Directory Entry (#1)" in labels


def test_empty_unknown_size_payload_has_no_contents_section():
    out = stream(build_archive([Entry(b"a", b"", descriptor=True)]))
    assert section_labels(out)[:3] == ["Local File Header (#0)", "File Name", "Optional Data Descriptor"]


def test_signature_split_by_repeated_byte_is_found():
    # "P" followed by "PK\x07\x08": the second P restarts the match.
    archive = build_archive([Entry(b"a", b"xP", descriptor=True)])
    out = stream(archive)
    assert "\n7850\n" in out
    assert "Optional Data Descriptor" in section_labels(out)


# --- Protocol errors ---

def test_unknown_signature():
    with pytest.raises(WrongSignature) as exc_info:
        stream(b"XXXX" + end_of_central_directory(0, 0, 0))
    assert exc_info.value.offset == 0


def test_central_directory_cannot_start_the_archive():
    cd = central_directory_header(b"a", 0, 0, 0)
    with pytest.raises(WrongSignature):
        stream(cd + end_of_central_directory(1, len(cd), 0))


def test_local_header_after_central_directory():
    archive = build_archive([Entry(b"a", b"b")])
    eocdr_offset = len(archive) - 22
    broken = archive[:eocdr_offset] + local_file_header(b"c", 0, 0) + archive[eocdr_offset:]
    with pytest.raises(WrongSignature):
        stream(broken)


def test_eocdr_cannot_follow_local_entries():
    lfh = local_file_header(b"a", 1, 1) + b"x"
    with pytest.raises(WrongSignature):
        stream(lfh + end_of_central_directory(0, 0, 0))


def test_trailing_data_after_eocdr():
    with pytest.raises(ExpectedEof):
        stream(end_of_central_directory(0, 0, 0) + b"\x00")


def test_empty_input():
    with pytest.raises(UnexpectedEndOfFile):
        stream(b"")


def test_truncated_local_header():
    with pytest.raises(UnexpectedEndOfFile):
        stream(local_file_header(b"abc", 10, 10)[:20])


def test_input_ending_after_payload():
    with pytest.raises(UnexpectedEndOfFile):
        stream(local_file_header(b"a", 1, 1) + b"x")


def test_unknown_size_without_descriptor():
    with pytest.raises(UnexpectedEndOfFile):
        stream(local_file_header(b"a", 0, 0, flags=0x0008) + b"payload without end")


def test_zip64_record_requires_locator():
    archive = zip64_end_of_central_directory(0, 0, 0) + end_of_central_directory(0, 0, 0)
    with pytest.raises(ExpectedZip64EndOfCentralDirectoryLocator):
        stream(archive)


def test_zip64_locator_requires_eocdr():
    archive = zip64_end_of_central_directory(0, 0, 0) + zip64_locator(0) + b"JUNK" * 6
    with pytest.raises(ExpectedEndOfCentralDirectoryRecord):
        stream(archive)


def test_streaming_dumper_accepts_paths(tmp_path):
    path = tmp_path / "archive.zip"
    path.write_bytes(end_of_central_directory(0, 0, 0))
    output = io.StringIO()
    with StreamingDumper(path, output) as dumper:
        dumper.dump()
    assert section_labels(output.getvalue()) == ["End of central directory record"]
