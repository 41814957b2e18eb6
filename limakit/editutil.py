"""Editing a configuration in the user's text editor."""

from __future__ import annotations

import logging
import os
import subprocess
import tempfile
from typing import Iterable

from limakit import editorcmd

logger = logging.getLogger(__name__)


def file_warning(filename: str) -> str:
    """Return a commented-out copy of ``filename`` as a warning, or "" if it is missing or empty."""
    try:
        with open(filename, encoding="utf-8", errors="replace") as f:
            text = f.read()
    except OSError:
        return ""
    if not text:
        return ""
    parts = [
        f"# WARNING: {filename} includes the following settings,\n",
        "# which are applied before applying this YAML:\n",
        "# -----------\n",
    ]
    for line in text.removesuffix("\n").split("\n"):
        parts.append("# " + line + "\n" if line else "#\n")
    parts.append("# -----------\n")
    parts.append("\n")
    return "".join(parts)


def generate_editor_warning_header(config_dir: str | None, filenames: Iterable[str]) -> str:
    """Build the editor header that warns about settings in the config directory.

    ``config_dir`` is None when the config directory could not be determined.
    """
    if config_dir is None:
        return "# WARNING: failed to load the config dir\n\n"
    return "".join(file_warning(os.path.join(config_dir, name)) for name in filenames)


def open_editor(content: bytes, header: str) -> bytes | None:
    """Open an editor on ``header`` followed by ``content`` and return the edited content.

    The header is stripped from the result. None is returned when the file was
    saved empty or with whitespace only.
    """
    editor = editorcmd.detect()
    if not editor:
        raise RuntimeError("could not detect a text editor binary, try setting $EDITOR")
    fd, path = tempfile.mkstemp(prefix="lima-editor-")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(header.encode("utf-8") + content)
        os.chmod(path, 0o600)
        logger.debug("opening editor %r for a file %r", editor, path)
        try:
            subprocess.run([editor, path], check=True)
        except (OSError, subprocess.CalledProcessError) as e:
            raise RuntimeError(
                f"could not execute editor {editor!r} for a file {path!r}: {e}"
            ) from e
        with open(path, "rb") as f:
            data = f.read()
    finally:
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass
    text = data.decode("utf-8", errors="surrogateescape")
    without_header = text.removeprefix(header)
    if not without_header.strip():
        return None
    return without_header.encode("utf-8", errors="surrogateescape")