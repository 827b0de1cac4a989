"""Delivery of documents to a mounted device documents folder.

The device stores every document as a payload file named after a UUID plus
two JSON sidecars: ``<uuid>.metadata`` (display name, modification time) and
``<uuid>.content`` (file type and page settings).
"""

import json
import logging
import re
import shutil
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from rmsync.converter import write_atomically
from rmsync.errors import TransportError

logger = logging.getLogger(__name__)

METADATA_SUFFIX = ".metadata"
CONTENT_SUFFIX = ".content"
DOCUMENT_TYPE = "DocumentType"
SIDECAR_DIRS = ("thumbnails", "highlights", "cache")
IDENTITY_TRANSFORM = {
    "m11": 1, "m12": 0, "m13": 0,
    "m21": 0, "m22": 1, "m23": 0,
    "m31": 0, "m32": 0, "m33": 1,
}  # fmt: skip


class Transport(Protocol):
    """Moves raw bytes to and from the device."""

    def send_bytes(self, data: bytes, remote_path: str) -> None: ...

    def fetch_bytes(self, remote_path: str) -> bytes: ...

    def list_names(self, pattern: str) -> list[str]: ...

    def make_dirs(self, remote_path: str) -> None: ...

    def remove(self, name_prefix: str) -> None: ...


class DirectoryTransport:
    """Transport over a locally reachable documents directory.

    Works with a USB mount, an sshfs mount or a backup copy of the device
    folder. Paths are relative to the root directory.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root).expanduser()

    def __repr__(self) -> str:
        return f"DirectoryTransport({str(self.root)!r})"

    def is_reachable(self) -> bool:
        return self.root.is_dir()

    def send_bytes(self, data: bytes, remote_path: str) -> None:
        target = self._resolve(remote_path)
        try:
            write_atomically(target, data)
        except OSError as e:
            raise TransportError(f"Failed to write {target}: {e}") from e

    def fetch_bytes(self, remote_path: str) -> bytes:
        source = self._resolve(remote_path)
        try:
            return source.read_bytes()
        except OSError as e:
            raise TransportError(f"Failed to read {source}: {e}") from e

    def list_names(self, pattern: str) -> list[str]:
        try:
            return sorted(path.name for path in self.root.glob(pattern))
        except OSError as e:
            raise TransportError(f"Failed to list {self.root}: {e}") from e

    def make_dirs(self, remote_path: str) -> None:
        target = self._resolve(remote_path)
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise TransportError(f"Failed to create {target}: {e}") from e

    def remove(self, name_prefix: str) -> None:
        """Delete every file and directory whose name starts with the prefix."""
        if not name_prefix or "/" in name_prefix:
            raise TransportError(f"Refusing to remove with prefix {name_prefix!r}")
        try:
            for path in self.root.glob(f"{glob_escape(name_prefix)}*"):
                if path.is_dir():
                    shutil.rmtree(path)
                else:
                    path.unlink()
        except OSError as e:
            raise TransportError(f"Failed to remove {name_prefix}: {e}") from e

    def _resolve(self, remote_path: str) -> Path:
        path = (self.root / remote_path).resolve()
        if not path.is_relative_to(self.root.resolve()):
            raise TransportError(f"Path escapes the device folder: {remote_path}")
        return path


def glob_escape(name: str) -> str:
    return re.sub(r"([*?\[])", r"[\1]", name)


def connect(candidates: list[str | Path]) -> DirectoryTransport:
    """Return a transport for the first reachable candidate directory.

    Candidates are tried in order, so list the local mount before any
    network mount.

    Raises:
        TransportError: If none of the candidates is reachable.
    """
    for candidate in candidates:
        transport = DirectoryTransport(candidate)
        if transport.is_reachable():
            logger.info("Using device folder %s", transport.root)
            return transport
        logger.info("Device folder %s is not reachable", transport.root)

    tried = ", ".join(str(candidate) for candidate in candidates) or "none given"
    raise TransportError(f"No device folder reachable (tried: {tried})")


@dataclass(frozen=True)
class DocumentEntry:
    """A document stored on the device."""

    doc_id: str
    visible_name: str
    last_modified: int  # Milliseconds since the epoch.
    file_type: str = "pdf"


class DeviceCatalog:
    """Reads and writes documents in the device's storage layout."""

    def __init__(self, transport: Transport):
        self.transport = transport

    def upload(self, data: bytes, visible_name: str, file_type: str = "pdf") -> str:
        """Store a document on the device.

        Args:
            data: Document payload.
            visible_name: Name shown on the device.
            file_type: "pdf" or "epub".

        Returns:
            The new document id.
        """
        doc_id = str(uuid.uuid4())
        metadata = {
            "lastModified": str(int(time.time() * 1000)),
            "type": DOCUMENT_TYPE,
            "version": 1,
            "visibleName": visible_name,
        }
        content = {"fileType": file_type}
        if file_type == "pdf":
            content.update(margins=100, pageCount=1, textScale=1, transform=IDENTITY_TRANSFORM)

        self.transport.send_bytes(data, f"{doc_id}.{file_type}")
        self.transport.send_bytes(json.dumps(metadata).encode("utf-8"), doc_id + METADATA_SUFFIX)
        self.transport.send_bytes(json.dumps(content).encode("utf-8"), doc_id + CONTENT_SUFFIX)
        for name in SIDECAR_DIRS:
            self.transport.make_dirs(f"{doc_id}.{name}")

        logger.info("Uploaded %s as %s", visible_name, doc_id)
        return doc_id

    def list_documents(self) -> list[DocumentEntry]:
        """List the PDF documents on the device, sorted by visible name.

        Documents with unreadable metadata or without a PDF payload are
        skipped.
        """
        names = set(self.transport.list_names("*"))
        entries = []
        for name in sorted(names):
            if not name.endswith(METADATA_SUFFIX):
                continue
            doc_id = name.removesuffix(METADATA_SUFFIX)
            if f"{doc_id}.pdf" not in names:
                continue
            metadata = self._read_metadata(name)
            if metadata is None:
                continue
            visible_name = metadata.get("visibleName")
            if not isinstance(visible_name, str) or not visible_name:
                logger.warning("Skipping %s: no visible name", name)
                continue
            try:
                last_modified = int(metadata.get("lastModified") or 0)
            except (TypeError, ValueError) as e:
                logger.warning("Skipping %s: bad lastModified: %s", name, e)
                continue
            entries.append(DocumentEntry(doc_id=doc_id, visible_name=visible_name, last_modified=last_modified))
        return sorted(entries, key=lambda entry: entry.visible_name.lower())

    def download(self, entry: DocumentEntry) -> bytes:
        return self.transport.fetch_bytes(f"{entry.doc_id}.{entry.file_type}")

    def remove(self, doc_id: str) -> None:
        self.transport.remove(doc_id)
        logger.info("Removed %s", doc_id)

    def cleanup_except(self, pattern: str) -> list[str]:
        """Remove every document whose metadata does not match a pattern.

        Args:
            pattern: Regular expression searched in the raw metadata JSON.

        Returns:
            Ids of the removed documents.
        """
        try:
            keep = re.compile(pattern)
        except re.error as e:
            raise ValueError(f"Invalid pattern {pattern!r}: {e}") from e

        removed = []
        for name in self.transport.list_names(f"*{METADATA_SUFFIX}"):
            try:
                raw = self.transport.fetch_bytes(name).decode("utf-8", errors="replace")
            except TransportError as e:
                logger.warning("Skipping %s: %s", name, e)
                continue
            if keep.search(raw):
                continue
            doc_id = name.removesuffix(METADATA_SUFFIX)
            self.remove(doc_id)
            removed.append(doc_id)
        return removed

    def _read_metadata(self, name: str) -> dict | None:
        try:
            metadata = json.loads(self.transport.fetch_bytes(name))
        except (TransportError, ValueError) as e:
            logger.warning("Skipping %s: %s", name, e)
            return None
        return metadata if isinstance(metadata, dict) else None
