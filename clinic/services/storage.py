import os
import uuid
from pathlib import Path

from ..core.config import settings


class BlobStore:
    """Stores uploaded files and returns a retrievable URL."""

    def save(self, filename: str, content: bytes) -> str:
        raise NotImplementedError


class LocalBlobStore(BlobStore):
    def __init__(self, root: str = None, base_url: str = None):
        self.root = Path(root or settings.UPLOAD_DIR)
        self.base_url = (base_url or settings.PUBLIC_BASE_URL).rstrip("/")

    def save(self, filename: str, content: bytes) -> str:
        self.root.mkdir(parents=True, exist_ok=True)
        suffix = Path(os.path.basename(filename or "")).suffix
        stored_name = f"{uuid.uuid4().hex}{suffix}"
        (self.root / stored_name).write_bytes(content)
        return f"{self.base_url}/uploads/{stored_name}"
