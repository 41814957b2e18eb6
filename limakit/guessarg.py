"""Guess what kind of thing a command-line argument refers to."""

from __future__ import annotations

import json
import os
import re
from urllib.parse import ParseResult, urlparse

_MAX_IDENTIFIER_LENGTH = 76
_IDENTIFIER_RE = re.compile(r"[A-Za-z0-9]+(?:[._-](?:[A-Za-z0-9]+))*")
_IDENTIFIER_PATTERN = "^" + _IDENTIFIER_RE.pattern + "$"


def _quote(s: str) -> str:
    return json.dumps(s, ensure_ascii=False)


def _base(p: str, seps: str = "/") -> str:
    """Return the last element of a path, like a slash-separated basename."""
    if p == "":
        return "."
    stripped = p.rstrip(seps)
    if stripped == "":
        return p[0]
    idx = max(stripped.rfind(sep) for sep in seps)
    return stripped[idx + 1:]


def _file_seps() -> str:
    seps = "/"
    for sep in (os.sep, os.altsep):
        if sep and sep not in seps:
            seps += sep
    return seps


def validate_identifier(s: str) -> None:
    """Raise ValueError unless ``s`` is a valid instance identifier."""
    if not s:
        raise ValueError("identifier must not be empty")
    if len(s.encode("utf-8")) > _MAX_IDENTIFIER_LENGTH:
        raise ValueError(
            f"identifier {_quote(s)} greater than maximum length "
            f"({_MAX_IDENTIFIER_LENGTH} characters)"
        )
    if not _IDENTIFIER_RE.fullmatch(s) or not s.isascii():
        raise ValueError(f"identifier {_quote(s)} must match {_IDENTIFIER_PATTERN}")


def _parse(arg: str) -> ParseResult | None:
    try:
        return urlparse(arg)
    except ValueError:
        return None


def seems_template_url(arg: str) -> tuple[bool, ParseResult | None]:
    """Return whether ``arg`` is a ``template://`` URL, together with the parsed URL."""
    u = _parse(arg)
    if u is None:
        return False, None
    return u.scheme == "template", u


def seems_http_url(arg: str) -> bool:
    u = _parse(arg)
    return u is not None and u.scheme in ("http", "https")


def seems_file_url(arg: str) -> bool:
    u = _parse(arg)
    return u is not None and u.scheme == "file"


def seems_yaml_path(arg: str) -> bool:
    if "/" in arg:
        return True
    lower = arg.lower()
    return lower.endswith(".yml") or lower.endswith(".yaml")


def inst_name_from_url(url: str) -> str:
    """Derive an instance name from the last path element of a URL."""
    u = _parse(url)
    if u is None:
        raise ValueError(f"invalid URL {_quote(url)}")
    return inst_name_from_yaml_path(_base(u.path))


def inst_name_from_yaml_path(yaml_path: str) -> str:
    """Derive an instance name from a YAML file name."""
    s = _base(yaml_path, _file_seps()).lower()
    s = s.removesuffix(".yml").removesuffix(".yaml")
    s = s.replace(".", "-")
    try:
        validate_identifier(s)
    except ValueError as e:
        raise ValueError(f"filename {_quote(yaml_path)} is invalid: {e}") from e
    return s