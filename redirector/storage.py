import os
import tempfile
from pathlib import Path


def ensure_data_dir(data_dir) -> Path:
    """Creates the data directory if it is missing."""
    path = Path(data_dir)
    os.makedirs(path, exist_ok=True)
    return path


def write_text_atomic(path, text: str) -> None:
    """
    Writes `text` to `path` through a temporary file in the same directory.
    Readers see either the old content or the new one, never a partial file.
    """
    path = Path(path)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_name, 0o644)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def read_bytes_if_exists(path):
    """Returns the file content, or None when the file does not exist."""
    try:
        return Path(path).read_bytes()
    except FileNotFoundError:
        return None
