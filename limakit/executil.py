"""Running commands whose output is UTF-16LE encoded."""

from __future__ import annotations

import subprocess
from typing import Sequence


def decode_utf16le(data: bytes) -> str:
    """Decode UTF-16LE bytes to a string."""
    return data.decode("utf-16-le")


def run_utf16le_command(args: Sequence[str], timeout: float | None = None) -> str:
    """Run a command and return its combined stdout and stderr decoded from UTF-16LE.

    A non-zero exit raises CalledProcessError whose ``output`` is the decoded text.
    """
    if not args:
        raise ValueError("no command given")
    proc = subprocess.run(
        list(args),
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        timeout=timeout,
        check=False,
    )
    out = ""
    if proc.stdout:
        try:
            out = decode_utf16le(proc.stdout)
        except UnicodeDecodeError as e:
            raise ValueError(
                f"failed to convert output from UTF16 when running command {list(args)}, err: {e}"
            ) from e
    if proc.returncode != 0:
        raise subprocess.CalledProcessError(proc.returncode, list(args), output=out)
    return out