import pytest

from builders import Entry, build_archive, section_labels
from hexdumpzip import __version__
from hexdumpzip.__main__ import main


@pytest.fixture
def archive_path(tmp_path):
    path = tmp_path / "archive.zip"
    path.write_bytes(build_archive([Entry(b"hello.txt", b"hello world")], comment=b"cli"))
    return path


def test_writes_transcript(archive_path, tmp_path):
    out_path = tmp_path / "archive.hex"
    main([str(archive_path), str(out_path)])
    transcript = out_path.read_text(encoding="utf-8")
    assert section_labels(transcript)[0] == "Local File Header (#0)"
    assert section_labels(transcript)[-1] == ".ZIP file comment"


def test_streaming_flag(archive_path, tmp_path):
    random_path = tmp_path / "random.hex"
    streaming_path = tmp_path / "streaming.hex"
    main([str(archive_path), str(random_path)])
    main(["--streaming", str(archive_path), str(streaming_path)])
    assert section_labels(streaming_path.read_text(encoding="utf-8")) == section_labels(
        random_path.read_text(encoding="utf-8")
    )


def test_invalid_archive_exits_with_1(tmp_path, capsys):
    bad = tmp_path / "bad.zip"
    bad.write_bytes(b"not a zip file at all, just some text")
    with pytest.raises(SystemExit) as exc_info:
        main([str(bad), str(tmp_path / "bad.hex")])
    assert exc_info.value.code == 1
    assert capsys.readouterr().err.startswith("hexdump-zip: NotAZipFile:")


def test_streaming_error_exits_with_1(tmp_path, capsys):
    bad = tmp_path / "bad.zip"
    bad.write_bytes(b"JUNK")
    with pytest.raises(SystemExit) as exc_info:
        main(["--streaming", str(bad), str(tmp_path / "bad.hex")])
    assert exc_info.value.code == 1
    assert capsys.readouterr().err.startswith("hexdump-zip: WrongSignature:")


def test_missing_input_exits_with_2(tmp_path, capsys):
    with pytest.raises(SystemExit) as exc_info:
        main([str(tmp_path / "missing.zip"), str(tmp_path / "out.hex")])
    assert exc_info.value.code == 2
    assert "File not found" in capsys.readouterr().err


def test_missing_arguments_exit_with_2():
    with pytest.raises(SystemExit) as exc_info:
        main([])
    assert exc_info.value.code == 2


def test_version(capsys):
    with pytest.raises(SystemExit) as exc_info:
        main(["--version"])
    assert exc_info.value.code == 0
    assert __version__ in capsys.readouterr().out
