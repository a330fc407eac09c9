import zipfile

import pytest

from onec_exchange.exceptions import ArchiveError
from onec_exchange.services.archive_service import check_member_name, unpack_archives


def _make_zip(path, members):
    with zipfile.ZipFile(path, "w") as zf:
        for name, data in members.items():
            zf.writestr(name, data)


def test_unpack_with_zipfile(tmp_path):
    _make_zip(tmp_path / "catalog.zip", {
        "import.xml": "<a/>",
        "import_files/ab/photo.jpg": b"jpg",
    })

    count = unpack_archives(tmp_path, use_native=False)

    assert count == 1
    assert (tmp_path / "import.xml").read_text() == "<a/>"
    assert (tmp_path / "import_files" / "ab" / "photo.jpg").exists()
    assert not (tmp_path / "catalog.zip").exists()


def test_nothing_to_unpack(tmp_path):
    assert unpack_archives(tmp_path, use_native=False) == 0


@pytest.mark.parametrize("name", ["../evil.xml", "a/../../evil.xml", "/etc/passwd", "\\evil.xml", "C:/evil.xml"])
def test_unsafe_member_rejected(name):
    with pytest.raises(ArchiveError):
        check_member_name(name)


def test_traversal_archive_extracts_nothing(tmp_path):
    exchange_dir = tmp_path / "sale"
    exchange_dir.mkdir()
    _make_zip(exchange_dir / "orders.zip", {
        "orders.xml": "<a/>",
        "../escaped.xml": "<b/>",
    })

    with pytest.raises(ArchiveError):
        unpack_archives(exchange_dir, use_native=False)

    assert not (tmp_path / "escaped.xml").exists()
    assert not (exchange_dir / "orders.xml").exists()


def test_broken_archive(tmp_path):
    (tmp_path / "broken.zip").write_bytes(b"not a zip")
    with pytest.raises(ArchiveError):
        unpack_archives(tmp_path, use_native=False)


def test_native_unzip_failure_falls_back(tmp_path, monkeypatch):
    import onec_exchange.services.archive_service as archive_service

    monkeypatch.setattr(archive_service, "_unpack_native", lambda archive, directory: False)
    _make_zip(tmp_path / "catalog.zip", {"offers.xml": "<a/>"})

    assert unpack_archives(tmp_path) == 1
    assert (tmp_path / "offers.xml").exists()
