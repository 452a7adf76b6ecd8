"""File handler module: kind-aware reads and atomic writes on the external store.

All sync functions only touch the filesystem.  The async wrappers push
them onto a worker thread via run_sync() so that the event loop keeps
serving watch events while large files are copied.
"""

import os
import tempfile
from pathlib import Path

from charset_normalizer import from_bytes

from syncrep.core.async_utils import run_sync

# =============================================================================
# File Read
# =============================================================================


def read_file_with_encoding(path: Path) -> tuple[str, str]:
    """Read a text file, detecting the encoding when it is not UTF-8.

    UTF-8 is tried first so that content written by the vault round-trips
    unchanged.  Anything else goes through charset-normalizer.

    Args:
        path: Path to the file to read.

    Returns:
        Tuple of (content_string, detected_encoding).
    """
    raw = path.read_bytes()
    if not raw:
        return ("", "utf-8")

    try:
        return (raw.decode("utf-8"), "utf-8")
    except UnicodeDecodeError:
        pass

    result = from_bytes(raw).best()
    if result is None:
        return (raw.decode("utf-8", errors="replace"), "utf-8")
    return (str(result), result.encoding)


def read_content(path: Path, binary: bool = False) -> str | bytes:
    """Read *path* as bytes when *binary* is set, else as decoded text."""
    if binary:
        return path.read_bytes()
    content, _ = read_file_with_encoding(path)
    return content


# =============================================================================
# File Write
# =============================================================================


def write_file_atomic(path: Path, content: str | bytes) -> int:
    """Write *content* to *path* atomically, creating parent directories.

    Writes to a temporary file in the target directory then replaces the
    target with ``os.replace()`` so watchers never observe a half-written
    file.  Text is encoded as UTF-8.

    Args:
        path: Path to the output file.
        content: Text or bytes to write.

    Returns:
        Number of bytes written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    data = content.encode("utf-8") if isinstance(content, str) else content

    fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
    return len(data)


# =============================================================================
# Async Wrappers
# =============================================================================


async def read_content_async(path: Path, binary: bool = False) -> str | bytes:
    """Async wrapper around ``read_content``."""
    return await run_sync(read_content, path, binary)


async def write_file_async(path: Path, content: str | bytes) -> int:
    """Async wrapper around ``write_file_atomic``."""
    return await run_sync(write_file_atomic, path, content)


def is_temp_file(name: str) -> bool:
    """True for the transient files ``write_file_atomic`` leaves behind."""
    return name.startswith(".") and name.endswith(".tmp")
