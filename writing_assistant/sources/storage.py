from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

logger = logging.getLogger(__name__)


class ObjectStorage:
    """
    Abstract object storage boundary. References are opaque strings issued by
    the storage itself; callers never build them.
    """

    def issue_write_location(self, owner_id: str, material_id: str, filename: str) -> str:
        raise NotImplementedError

    def write(self, reference: str, data: bytes) -> None:
        raise NotImplementedError

    def read(self, reference: str) -> bytes:
        raise NotImplementedError

    def delete(self, reference: str) -> None:
        raise NotImplementedError


@dataclass
class StoragePaths:
    root: Path

    def reference_for(self, owner_id: str, material_id: str, filename: str) -> str:
        ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
        ext = "".join(ch for ch in ext if ch.isalnum()) or "bin"
        return f"sources/{owner_id}/{material_id}/{uuid.uuid4().hex}.{ext}"

    def resolve(self, reference: str) -> Path:
        relative = PurePosixPath(reference)
        if relative.is_absolute() or ".." in relative.parts:
            raise ValueError(f"Invalid storage reference: {reference}")
        return self.root / Path(*relative.parts)


class LocalObjectStorage(ObjectStorage):
    """
    Filesystem-backed object storage. Writing through `write` stands in for
    the presigned upload a cloud bucket would hand to the client.
    """

    def __init__(self, storage_paths: StoragePaths):
        self.paths = storage_paths

    def issue_write_location(self, owner_id: str, material_id: str, filename: str) -> str:
        reference = self.paths.reference_for(owner_id, material_id, filename)
        self.paths.resolve(reference).parent.mkdir(parents=True, exist_ok=True)
        return reference

    def write(self, reference: str, data: bytes) -> None:
        target = self.paths.resolve(reference)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    def read(self, reference: str) -> bytes:
        path = self.paths.resolve(reference)
        if not path.exists():
            raise FileNotFoundError(f"Stored object not found at {path}")
        return path.read_bytes()

    def exists(self, reference: str) -> bool:
        return self.paths.resolve(reference).exists()

    def delete(self, reference: str) -> None:
        path = self.paths.resolve(reference)
        path.unlink(missing_ok=True)
        # Drop the per-material directory once it is empty.
        try:
            path.parent.rmdir()
        except OSError:
            logger.debug("Storage directory %s not removed", path.parent)
