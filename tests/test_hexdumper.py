import io

import pytest

from hexdumpzip.hexdumper import (
    COMPACT_BLOB,
    CP437_BLOB,
    DEFAULT_BLOB,
    UTF8_BLOB,
    BlobConfig,
    BlobState,
    Encoding,
    Hexdumper,
    escape_codepoint,
    utf8_sequence_length,
)

REPLACEMENT = "�"


def render(callback, offset_width=0):
    output = io.StringIO()
    dumper = Hexdumper(output, offset_width=offset_width)
    callback(dumper)
    return output.getvalue()


def overlay(line):
    """Text between the quotes of a row's overlay."""
    text = line.rstrip("\n").split(' ; ', 1)[1]
    return text[text.index('"') + 1 : -1]


# --- Section headers and indentation ---

def test_section_header_is_zero_padded_to_offset_width():
    out = render(lambda d: d.write_section_header(0x1A, "Local File Header (#0)"), offset_width=4)
    assert out == ":0x001a ; Local File Header (#0)\n"


def test_section_header_without_padding():
    out = render(lambda d: d.write_section_header(0x1A, "File Contents"))
    assert out == ":0x1a ; File Contents\n"


def test_blank_line_only_before_later_top_level_headers():
    def callback(d):
        d.write_section_header(0, "first")
        with d.indented():
            d.write_section_header(4, "nested")
        d.write_section_header(8, "second")

    assert render(callback) == ":0x0 ; first\n  :0x4 ; nested\n\n:0x8 ; second\n"


def test_indented_restores_level_on_error():
    dumper = Hexdumper(io.StringIO())
    with pytest.raises(RuntimeError):
        with dumper.indented(2):
            assert dumper.indentation == 2
            raise RuntimeError("boom")
    assert dumper.indentation == 0


def test_unbalanced_outdent_raises():
    with pytest.raises(ValueError):
        Hexdumper(io.StringIO()).outdent()


# --- Struct fields ---

def test_struct_field_at_max_width():
    out = render(lambda d: d.read_struct_field(b"PK\x03\x04", 4, 0, 4, "Local file header signature"))
    assert out == '50 4b 03 04 ; "PK♥♦" ; 0067324752 ; 0x04034b50 ; Local file header signature\n'


def test_struct_field_narrower_than_max_is_padded():
    out = render(lambda d: d.read_struct_field(b"\x14\x00", 4, 0, 2, "Version"))
    expected = "14 00" + " " * 6 + ' ; "¶' + REPLACEMENT + '"' + " " * 2 + " ; 0000000020 ; 0x0014" + " " * 4 + " ; Version\n"
    assert out == expected


def test_struct_field_decimal_width_follows_max_width():
    out = render(lambda d: d.read_struct_field(b"\x01\x00", 2, 0, 2, "n"))
    assert " ; 00001 ; 0x0001 ; n" in out
    out = render(lambda d: d.read_struct_field(b"\x01" + b"\x00" * 7, 8, 0, 8, "n"))
    assert " ; 00000000000000000001 ; 0x0000000000000001 ; n" in out


def test_struct_field_one_byte():
    out = render(lambda d: d.read_struct_field(b"\x03", 2, 0, 1, "Flags"))
    assert out == '03    ; "♥"  ; 00003 ; 0x03   ; Flags\n'


def test_struct_field_advances_cursor_and_indents():
    dumper = Hexdumper(io.StringIO())
    with dumper.indented():
        cursor = dumper.read_struct_field(b"\x01\x00\x02\x00", 2, 0, 2, "a")
        cursor = dumper.read_struct_field(b"\x01\x00\x02\x00", 2, cursor, 2, "b")
    assert cursor == 4
    lines = dumper.output.getvalue().splitlines()
    assert lines == ['  01 00 ; "☺�" ; 00001 ; 0x0001 ; a', '  02 00 ; "☻�" ; 00002 ; 0x0002 ; b']


def test_struct_field_overrun_raises():
    dumper = Hexdumper(io.StringIO())
    with pytest.raises(ValueError):
        dumper.read_struct_field(b"\x01\x02\x03", 4, 0, 4, "short")
    with pytest.raises(ValueError):
        dumper.read_struct_field(b"\x01\x02", 3, 0, 2, "bad max")
    with pytest.raises(ValueError):
        dumper.read_struct_field(b"\x01" * 8, 4, 0, 8, "wider than max")


# --- Blobs ---

def test_blob_rows_without_overlay():
    out = render(lambda d: d.write_blob(bytes(range(20))))
    assert out == "00 01 02 03 04 05 06 07 08 09 0a 0b 0c 0d 0e 0f\n10 11 12 13\n"


def test_compact_blob_rows():
    out = render(lambda d: d.write_blob(b"\xab" * 600, COMPACT_BLOB))
    assert out == "ab" * 512 + "\n" + "ab" * 88 + "\n"


def test_cp437_overlay_escapes_quote_and_backslash():
    out = render(lambda d: d.write_blob(b'a"b\\', CP437_BLOB))
    assert out == '61 22 62 5c ; cp437"a\\"b\\\\"\n'


def test_cp437_overlay_pads_short_last_row():
    out = render(lambda d: d.write_blob(b"A" * 18, CP437_BLOB))
    lines = out.splitlines()
    assert lines[0] == " ".join(["41"] * 16) + ' ; cp437"' + "A" * 16 + '"'
    assert lines[1] == "41 41" + "   " * 14 + ' ; cp437"AA"'


def test_single_short_row_is_not_padded():
    out = render(lambda d: d.write_blob(b"hello", CP437_BLOB))
    assert out == '68 65 6c 6c 6f ; cp437"hello"\n'


def test_utf8_overlay_copies_valid_text():
    out = render(lambda d: d.write_blob("héllo".encode(), UTF8_BLOB))
    assert out == '68 c3 a9 6c 6c 6f ; utf8"héllo"\n'


def test_utf8_overlay_escapes():
    data = b'a\nb\t"\\\x01\x7f' + "\u2028".encode() + "\u0085".encode()
    out = render(lambda d: d.write_blob(data, UTF8_BLOB))
    assert overlay(out.splitlines()[0]) == 'a\\nb\\t\\"\\\\\\x01\\x7f\\u2028\\u0085'


def test_utf8_invalid_lead_byte_is_replaced_and_decoding_resumes():
    out = render(lambda d: d.write_blob(b"a\xffb", UTF8_BLOB))
    assert overlay(out) == "a" + REPLACEMENT + "b"


def test_utf8_incomplete_sequence_at_end_is_replaced():
    out = render(lambda d: d.write_blob(b"ab\xe2\x82", UTF8_BLOB))
    assert overlay(out) == "ab" + REPLACEMENT


def test_utf8_invalid_complete_sequence_is_one_replacement():
    # Overlong encoding of "/"
    out = render(lambda d: d.write_blob(b"\xc0\xafz", UTF8_BLOB))
    assert overlay(out) == REPLACEMENT + "z"


def test_utf8_sequence_split_across_rows():
    data = b"a" * 15 + "é".encode()
    lines = render(lambda d: d.write_blob(data, UTF8_BLOB)).splitlines()
    assert overlay(lines[0]) == "a" * 15
    assert lines[1] == "a9" + "   " * 15 + ' ; utf8"é"'


@pytest.mark.parametrize("config", [DEFAULT_BLOB, CP437_BLOB, UTF8_BLOB, COMPACT_BLOB])
def test_blob_parts_match_single_blob_for_every_split(config):
    data = ("zürich € 😀 ok " * 3).encode() + b"\xff\xe2\x82"
    expected = render(lambda d: d.write_blob(data, config))
    for split in range(len(data) + 1):
        def callback(d):
            state = BlobState()
            d.write_blob_part(data[:split], config, True, False, state)
            d.write_blob_part(data[split:], config, False, True, state)

        assert render(callback) == expected, f"split at {split}"


def test_blob_parts_byte_by_byte():
    data = "日本語のファイル名.txt".encode()
    expected = render(lambda d: d.write_blob(data, UTF8_BLOB))

    def callback(d):
        state = BlobState()
        for i in range(len(data)):
            d.write_blob_part(data[i : i + 1], UTF8_BLOB, i == 0, i == len(data) - 1, state)

    assert render(callback) == expected


def test_blob_config_defaults():
    config = BlobConfig()
    assert config.row_length == 16
    assert config.spaces
    assert config.encoding is Encoding.NONE


# --- UTF-8 helpers ---

@pytest.mark.parametrize(
    "lead,length",
    [(0x41, 1), (0xC3, 2), (0xE2, 3), (0xF0, 4), (0x80, None), (0xF8, None), (0xFF, None)],
)
def test_utf8_sequence_length(lead, length):
    assert utf8_sequence_length(lead) == length


def test_escape_codepoint_rejects_surrogates():
    assert escape_codepoint(b"\xed\xa0\x80") == REPLACEMENT
