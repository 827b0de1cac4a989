"""Tests for the device folder transport and catalog."""

import json
from unittest.mock import MagicMock

import pytest

from rmsync.device import DeviceCatalog, DirectoryTransport, DocumentEntry, connect
from rmsync.errors import TransportError


@pytest.fixture
def catalog(device_dir):
    return DeviceCatalog(DirectoryTransport(device_dir))


def add_document(root, doc_id, name, payload=b"%PDF-1.4", modified="1700000000000"):
    metadata = {"lastModified": modified, "type": "DocumentType", "version": 1, "visibleName": name}
    (root / f"{doc_id}.metadata").write_text(json.dumps(metadata), encoding="utf-8")
    if payload is not None:
        (root / f"{doc_id}.pdf").write_bytes(payload)


class TestDirectoryTransport:
    """Tests for DirectoryTransport."""

    def test_send_and_fetch(self, device_dir):
        """Verify bytes written can be read back."""
        transport = DirectoryTransport(device_dir)

        transport.send_bytes(b"payload", "doc.pdf")

        assert transport.fetch_bytes("doc.pdf") == b"payload"
        assert transport.list_names("*.pdf") == ["doc.pdf"]

    def test_fetch_missing(self, device_dir):
        """Verify a missing file raises TransportError."""
        with pytest.raises(TransportError):
            DirectoryTransport(device_dir).fetch_bytes("nope.pdf")

    def test_path_escape_rejected(self, device_dir):
        """Verify paths outside the folder are refused."""
        with pytest.raises(TransportError, match="escapes"):
            DirectoryTransport(device_dir).send_bytes(b"x", "../outside.pdf")

    def test_remove_by_prefix(self, device_dir):
        """Verify every file and folder of a document is removed."""
        transport = DirectoryTransport(device_dir)
        transport.send_bytes(b"x", "abc.pdf")
        transport.send_bytes(b"x", "abc.metadata")
        transport.make_dirs("abc.cache")
        transport.send_bytes(b"x", "other.pdf")

        transport.remove("abc")

        assert transport.list_names("*") == ["other.pdf"]

    def test_remove_refuses_empty_prefix(self, device_dir):
        """Verify an empty prefix cannot wipe the folder."""
        with pytest.raises(TransportError):
            DirectoryTransport(device_dir).remove("")


class TestConnect:
    """Tests for connect."""

    def test_first_reachable_candidate_wins(self, tmp_path, device_dir):
        """Verify candidates are tried in order."""
        second = tmp_path / "second"
        second.mkdir()

        transport = connect([tmp_path / "missing", device_dir, second])

        assert transport.root == device_dir

    def test_no_reachable_candidate(self, tmp_path):
        """Verify TransportError names the candidates tried."""
        with pytest.raises(TransportError, match="missing"):
            connect([tmp_path / "missing"])


class TestDeviceCatalog:
    """Tests for DeviceCatalog."""

    def test_upload_writes_document_files(self, catalog, device_dir):
        """Verify upload stores the payload and both sidecars."""
        doc_id = catalog.upload(b"%PDF-data", "My Notes")

        assert (device_dir / f"{doc_id}.pdf").read_bytes() == b"%PDF-data"
        metadata = json.loads((device_dir / f"{doc_id}.metadata").read_text())
        assert metadata["visibleName"] == "My Notes"
        assert metadata["type"] == "DocumentType"
        assert metadata["version"] == 1
        assert metadata["lastModified"].isdigit()
        content = json.loads((device_dir / f"{doc_id}.content").read_text())
        assert content["fileType"] == "pdf"
        assert content["transform"]["m11"] == 1
        assert content["pageCount"] == 1
        for name in ("thumbnails", "highlights", "cache"):
            assert (device_dir / f"{doc_id}.{name}").is_dir()

    def test_upload_epub_has_no_pdf_settings(self, catalog, device_dir):
        """Verify non-PDF content only records the file type."""
        doc_id = catalog.upload(b"epub", "Book", file_type="epub")

        content = json.loads((device_dir / f"{doc_id}.content").read_text())
        assert content == {"fileType": "epub"}

    def test_list_documents(self, catalog, device_dir):
        """Verify documents are listed by name and incomplete ones skipped."""
        add_document(device_dir, "b-id", "beta")
        add_document(device_dir, "a-id", "Alpha")
        add_document(device_dir, "no-pdf", "ghost", payload=None)
        (device_dir / "bad.metadata").write_text("{not json", encoding="utf-8")
        (device_dir / "bad.pdf").write_bytes(b"x")

        entries = catalog.list_documents()

        assert entries == [
            DocumentEntry(doc_id="a-id", visible_name="Alpha", last_modified=1700000000000),
            DocumentEntry(doc_id="b-id", visible_name="beta", last_modified=1700000000000),
        ]

    def test_bad_metadata_values_are_skipped(self, catalog, device_dir):
        """Verify one malformed document does not hide the valid ones."""
        add_document(device_dir, "good-id", "Good")
        add_document(device_dir, "bad-time", "Bad time", modified="n/a")
        add_document(device_dir, "bad-name", None)

        entries = catalog.list_documents()

        assert [entry.doc_id for entry in entries] == ["good-id"]

    def test_download(self, catalog, device_dir):
        """Verify a document payload can be downloaded."""
        add_document(device_dir, "a-id", "Alpha", payload=b"%PDF-alpha")

        assert catalog.download(catalog.list_documents()[0]) == b"%PDF-alpha"

    def test_cleanup_except(self, catalog, device_dir):
        """Verify documents not matching the pattern are removed."""
        add_document(device_dir, "keep-id", "Keep me")
        add_document(device_dir, "drop-id", "Scratch")

        removed = catalog.cleanup_except("Keep")

        assert removed == ["drop-id"]
        assert [entry.doc_id for entry in catalog.list_documents()] == ["keep-id"]

    def test_cleanup_invalid_pattern(self, catalog):
        """Verify a broken regular expression is rejected."""
        with pytest.raises(ValueError, match="Invalid pattern"):
            catalog.cleanup_except("(")

    def test_catalog_uses_transport(self):
        """Verify the catalog only talks to its transport."""
        transport = MagicMock()
        catalog = DeviceCatalog(transport)

        doc_id = catalog.upload(b"data", "Name")

        sent = [call.args[1] for call in transport.send_bytes.call_args_list]
        assert sent == [f"{doc_id}.pdf", f"{doc_id}.metadata", f"{doc_id}.content"]
        assert transport.make_dirs.call_count == 3
