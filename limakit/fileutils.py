"""Downloading image files for a given architecture, and combining download errors."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Iterable

from limakit.downloader import DownloadError, Status, default_cache_dir, download

logger = logging.getLogger(__name__)


def _q(s: str) -> str:
    return json.dumps(s, ensure_ascii=False)


@dataclass(frozen=True)
class File:
    location: str
    arch: str
    digest: str = ""


class SkippedError(Exception):
    """Raised when a file was not downloaded at all."""


def _base(p: str) -> str:
    stripped = p.rstrip("/")
    if not stripped:
        return "/" if p else "."
    return stripped.rsplit("/", 1)[-1]


def download_file(
    dest: str,
    f: File,
    decompress: bool,
    description: str,
    expected_arch: str,
    cache_dir: str | None = None,
) -> str:
    """Download ``f`` into the cache, optionally copying it to ``dest``; return the cache path."""
    if f.arch != expected_arch:
        raise SkippedError(
            f"skipped to download: {_q(f.location)}: unsupported arch: {_q(f.arch)}"
        )
    logger.info(
        "Attempting to download %s (location=%s arch=%s digest=%s)",
        description, f.location, f.arch, f.digest,
    )
    try:
        res = download(
            dest,
            f.location,
            cache_dir=cache_dir if cache_dir is not None else default_cache_dir(),
            decompress=decompress,
            description=f"{description} ({_base(f.location)})",
            expected_digest=f.digest,
        )
    except (DownloadError, ValueError, OSError) as e:
        raise DownloadError(f"failed to download {_q(f.location)}: {e}") from e
    logger.debug("res.validated_digest=%s", res.validated_digest)
    if res.status == Status.DOWNLOADED:
        logger.info("Downloaded %s from %s", description, _q(f.location))
    elif res.status == Status.USED_CACHE:
        logger.info("Using cache %s", _q(res.cache_path))
    else:
        logger.warning("Unexpected result from download(): %s", res)
    return res.cache_path


def combine_errors(errs: Iterable[BaseException]) -> BaseException | None:
    """Combine errors into one, ignoring SkippedError unless nothing else is left."""
    errs = list(errs)
    final: BaseException | None = None
    for err in errs:
        if isinstance(err, SkippedError):
            logger.debug("%s", err)
        elif final is None:
            final = err
        else:
            combined = Exception(f"{final}, {err}")
            combined.__cause__ = err
            final = combined
    if errs and final is None:
        final = Exception("[" + " ".join(str(e) for e in errs) + "]")
    return final