import hashlib
from pathlib import Path

CHUNK_SIZE = 1024 * 1024


def digest_bytes(data: bytes) -> str:
    """SHA-256 of the original upload, as lowercase hex."""
    return hashlib.sha256(data).hexdigest()


def digest_file(path: str | Path) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            h.update(chunk)
    return h.hexdigest()
