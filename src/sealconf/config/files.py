"""File reading and atomic, permission-restricted writing."""

import os
from pathlib import Path

from sealconf.errors import FileReadError, FileWriteError


def read_text(path: Path) -> str | None:
    """
    Read a configuration file.

    Returns:
        File content, or None if the file does not exist.

    Raises:
        FileReadError: If the file exists but cannot be read.
    """
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError) as e:
        raise FileReadError(f"Cannot read config file {path}: {e}") from e


def write_secure_file(path: Path, content: str, mode: int = 0o600) -> None:
    """
    Write content to a file with restrictive permissions.

    Uses atomic write (write to temp, then rename) so a failed write never
    leaves a half-written configuration behind. The temp file is created
    with the target mode, so its content is never readable more widely.

    Raises:
        FileWriteError: If the file cannot be written.
    """
    temp_path = path.with_name(path.name + ".tmp")

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(temp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)

        try:
            # A stale temp file keeps its old mode; umask may also drop bits
            os.chmod(temp_path, mode)
        except OSError:
            # Windows or permission error - continue anyway
            pass

        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)

        os.replace(temp_path, path)

    except OSError as e:
        if temp_path.exists():
            temp_path.unlink()
        raise FileWriteError(f"Cannot write config file {path}: {e}") from e
