"""Helpers shared by the command-line front end: argument errors, name selection, snapshot lists."""

from __future__ import annotations

import json
import logging
from typing import Iterable, Sequence

logger = logging.getLogger(__name__)


def _q(s: str) -> str:
    return json.dumps(s, ensure_ascii=False)


def format_args_error(command_path: str, message: str, use_line: str, short: str) -> str:
    """Annotate a positional-argument error with usage context for the user."""
    return (
        f"{_q(command_path)} {message}.\n"
        f"See '{command_path} --help'.\n\n"
        f"Usage:  {use_line}\n\n"
        f"{short}"
    )


def select_names(args: Sequence[str], all_names: Iterable[str]) -> list[str]:
    """Return the names in ``all_names`` that the arguments ask for, in argument order.

    With no arguments every name is returned. Arguments that match nothing are
    logged as warnings and skipped.
    """
    names = list(all_names)
    if not args:
        return names
    selected: list[str] = []
    for arg in args:
        matches = [name for name in names if name == arg]
        if matches:
            selected.extend(matches)
        else:
            logger.warning("No instance matching %s found.", arg)
    return selected


def parse_snapshot_tags(output: str) -> list[str]:
    """Extract the snapshot tags from a snapshot listing table.

    The first line is the header ("ID", "TAG", "VM SIZE", ...); a header whose
    second column is not TAG raises ValueError. Empty lines are skipped.
    """
    tags: list[str] = []
    for i, line in enumerate(output.split("\n")):
        fields = line.split()
        if i == 0 and len(fields) > 1 and fields[1] != "TAG":
            raise ValueError(f"unknown header: {line}")
        if i == 0 or line == "":
            continue
        if len(fields) < 2:
            raise ValueError(f"malformed snapshot line: {line}")
        tags.append(fields[1])
    return tags