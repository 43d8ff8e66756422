import logging
import os
import re
import secrets
import tempfile
import time
from pathlib import Path

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


def ensure_dirs(*dirs: Path) -> None:
    for d in dirs:
        d.mkdir(parents=True, exist_ok=True)


def clean_basename(original_name: str) -> str:
    """Stem of `original_name` with every char outside [A-Za-z0-9_-] replaced by '_'."""
    stem = Path(original_name).stem
    return _UNSAFE_CHARS.sub("_", stem) or "document"


def unique_upload_name(original_name: str) -> str:
    """<epoch ms>-<9 random digits><ext>, unique per request."""
    ext = Path(original_name).suffix.lower()
    return f"{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{ext}"


def atomic_write(path: Path, data: bytes) -> Path:
    """Write `data` to `path` so readers see either nothing or the whole file."""
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=".tmp-", suffix=path.suffix)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp, path)
    except BaseException:
        remove_quietly(Path(tmp))
        raise
    return path


def remove_quietly(*paths: Path | None) -> None:
    """Best-effort cleanup for failure paths."""
    for path in paths:
        if path is None:
            continue
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"[FS] Could not remove {path}: {e}")


def resolve_in(directory: Path, filename: str) -> Path | None:
    """Resolve a client-supplied file name inside `directory`, or None.

    Rejects anything that is not a bare file name (separators, '..').
    """
    if not filename or Path(filename).name != filename or filename in (".", ".."):
        return None
    candidate = directory / filename
    if not candidate.is_file():
        return None
    return candidate
