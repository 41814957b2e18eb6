"""Detection of a text editor command."""

from __future__ import annotations

import os
import shutil


def detect() -> str:
    """Return the path of a text editor, or an empty string when none is found."""
    candidates = [
        os.environ.get("VISUAL", ""),
        os.environ.get("EDITOR", ""),
        "editor",
        "vim",
        "vi",
        "emacs",
    ]
    for candidate in candidates:
        if not candidate:
            continue
        found = shutil.which(candidate)
        if found:
            return found
    return ""