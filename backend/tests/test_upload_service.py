import pytest

from onec_exchange.exceptions import ExchangeFileError
from onec_exchange.services.upload_service import append_chunk, prepare_directory, temp_path_for


def test_chunks_are_appended(tmp_path):
    target = tmp_path / "import.xml"
    append_chunk(target, b'<?xml version="1.0"?><a>')
    size = append_chunk(target, b"<b/></a>")

    assert target.read_bytes() == b'<?xml version="1.0"?><a><b/></a>'
    assert size == len(target.read_bytes())
    assert not temp_path_for(target).exists()


def test_prolog_starts_new_file(tmp_path):
    target = tmp_path / "import.xml"
    target.write_bytes(b"<?xml version=\"1.0\"?><old/>")

    append_chunk(target, b'<?xml version="1.0"?><new/>')

    assert target.read_bytes() == b'<?xml version="1.0"?><new/>'


def test_prolog_outside_window_is_appended(tmp_path):
    target = tmp_path / "import.xml"
    target.write_bytes(b"head")
    chunk = b" " * 40 + b"<?xml "

    append_chunk(target, chunk)

    assert target.read_bytes() == b"head" + chunk


def test_write_failure_raises(tmp_path):
    target = tmp_path / "missing-dir" / "import.xml"
    with pytest.raises(ExchangeFileError):
        append_chunk(target, b"data")


def test_prepare_directory_cleans_leftovers(tmp_path):
    directory = tmp_path / "catalog"
    directory.mkdir()
    (directory / "import.xml").write_text("old")
    (directory / "import_files").mkdir()
    (directory / "import_files" / "1.jpg").write_bytes(b"x")

    prepare_directory(directory, cleanup=True)

    assert directory.exists()
    assert list(directory.iterdir()) == []


def test_prepare_directory_keeps_files_without_cleanup(tmp_path):
    directory = tmp_path / "catalog"
    directory.mkdir()
    (directory / "import.xml").write_text("old")

    prepare_directory(directory, cleanup=False)

    assert (directory / "import.xml").exists()
