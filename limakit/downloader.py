"""Download remote or local files, with an optional on-disk cache and digest validation."""

from __future__ import annotations

import hashlib
import json
import logging
import os
import re
import shutil
import subprocess
import sys
import urllib.error
import urllib.request
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024
_DIGEST_LENGTHS = {"sha256": 64, "sha384": 96, "sha512": 128}
_HEX_RE = re.compile(r"[a-f0-9]+")
_DECOMPRESSORS = {
    ".gz": "gzip",
    ".bz2": "bzip2",
    ".xz": "xz",
    ".zst": "zstd",
}


class Status(str, Enum):
    UNKNOWN = ""
    DOWNLOADED = "downloaded"
    SKIPPED = "skipped"
    USED_CACHE = "used-cache"


@dataclass
class Result:
    status: Status
    cache_path: str = ""
    validated_digest: bool = False


class DownloadError(Exception):
    """Raised when a download or a local copy fails."""


class DigestMismatchError(DownloadError):
    """Raised when the content does not match the expected digest."""


def _q(s: str) -> str:
    return json.dumps(s, ensure_ascii=False)


def default_cache_dir() -> str:
    """Return the per-user cache directory for downloads."""
    if sys.platform == "win32":
        base = os.environ.get("LocalAppData", "")
        if not base:
            raise DownloadError("%LocalAppData% is not defined")
    elif sys.platform == "darwin":
        home = os.environ.get("HOME", "")
        if not home:
            raise DownloadError("$HOME is not defined")
        base = os.path.join(home, "Library", "Caches")
    else:
        base = os.environ.get("XDG_CACHE_HOME", "")
        if not base:
            home = os.environ.get("HOME", "")
            if not home:
                raise DownloadError("neither $XDG_CACHE_HOME nor $HOME are defined")
            base = os.path.join(home, ".cache")
        elif not os.path.isabs(base):
            raise DownloadError("path in $XDG_CACHE_HOME is relative")
    return os.path.join(base, "lima")


def parse_digest(value: str) -> tuple[str, str]:
    """Split an ``algorithm:hex`` digest into its parts, raising ValueError if invalid."""
    algo, sep, encoded = value.partition(":")
    if not sep:
        algo = ""
    if algo not in _DIGEST_LENGTHS:
        raise ValueError(f"expected digest algorithm {_q(algo)} is not available")
    if not encoded:
        raise ValueError("invalid checksum digest format")
    if len(encoded) != _DIGEST_LENGTHS[algo]:
        raise ValueError("invalid checksum digest length")
    if not _HEX_RE.fullmatch(encoded):
        raise ValueError("invalid checksum digest format")
    return algo, encoded


def is_local(s: str) -> bool:
    return "://" not in s or s.startswith("file://")


def decompressor(ext: str) -> list[str] | None:
    """Return the command that decompresses files with extension ``ext``, or None."""
    program = _DECOMPRESSORS.get(ext)
    if program is None:
        return None
    return [program, "-d"]


def _ext(p: str) -> str:
    dot = p.rfind(".")
    slash = p.rfind("/")
    return p[dot:] if dot > slash else ""


def _expand(s: str) -> str:
    if s.startswith("~"):
        s = os.path.expanduser(s)
    return os.path.abspath(s)


def _canonical_local_path(s: str) -> str:
    if not s:
        raise DownloadError("got empty path")
    if not is_local(s):
        raise DownloadError(f"got non-local path: {_q(s)}")
    if s.startswith("file://"):
        res = s.removeprefix("file://")
        if not os.path.isabs(res):
            raise DownloadError(f"got non-absolute path {_q(res)}")
        return res
    return _expand(s)


def _remove_all(path: str) -> None:
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
    else:
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass


def _validate_local_file_digest(local_path: str, expected_digest: str) -> None:
    if not local_path:
        raise DownloadError("validateLocalFileDigest: got empty localPath")
    if not expected_digest:
        return
    logger.debug("verifying digest of local file %s (%s)", _q(local_path), expected_digest)
    algo, _ = parse_digest(expected_digest)
    h = hashlib.new(algo)
    with open(local_path, "rb") as r:
        for chunk in iter(lambda: r.read(_CHUNK_SIZE), b""):
            h.update(chunk)
    actual = f"{algo}:{h.hexdigest()}"
    if actual != expected_digest:
        raise DigestMismatchError(f"expected digest {_q(expected_digest)}, got {_q(actual)}")


def _decompress_local(dst: str, src: str, ext: str, description: str) -> None:
    command = decompressor(ext)
    if command is None:
        raise DownloadError(f"decompressLocal: unknown extension {ext}")
    logger.info("decompressing %s with %s", ext, command)
    logger.info("Decompressing %s", description or os.path.basename(src))
    with open(src, "rb") as in_f, open(dst, "wb") as out_f:
        try:
            proc = subprocess.run(
                command, stdin=in_f, stdout=out_f, stderr=subprocess.PIPE, check=False
            )
        except OSError as e:
            raise DownloadError(f"failed to run {command[0]}: {e}") from e
    if proc.returncode != 0:
        stderr = proc.stderr.decode(errors="replace").strip()
        raise DownloadError(f"{command[0]} exited with status {proc.returncode}: {stderr}")


def _copy_local(
    dst: str, src: str, ext: str, decompress: bool, description: str, expected_digest: str
) -> None:
    src_path = _canonical_local_path(src)
    _validate_local_file_digest(src_path, expected_digest)
    if not dst:
        # caching-only mode
        return
    dst_path = _canonical_local_path(dst)
    if decompress and decompressor(ext) is not None:
        _decompress_local(dst_path, src_path, ext, description)
        return
    shutil.copy(src_path, dst_path)


def _download_http(local_path: str, url: str, description: str, expected_digest: str) -> None:
    if not local_path:
        raise DownloadError("downloadHTTP: got empty localPath")
    logger.debug("downloading %s into %s", _q(url), _q(local_path))
    tmp_path = local_path + ".tmp"
    _remove_all(tmp_path)
    hasher = None
    algo = ""
    if expected_digest:
        algo, _ = parse_digest(expected_digest)
        hasher = hashlib.new(algo)
    try:
        with open(tmp_path, "wb") as w:
            try:
                resp = urllib.request.urlopen(url)
            except urllib.error.HTTPError as e:
                raise DownloadError(f"expected HTTP status 200, got {e.code} {e.reason}") from e
            except urllib.error.URLError as e:
                raise DownloadError(f"failed to fetch {_q(url)}: {e.reason}") from e
            with resp:
                if resp.status != 200:
                    raise DownloadError(
                        f"expected HTTP status 200, got {resp.status} {resp.reason}"
                    )
                logger.info("Downloading %s", description or url)
                for chunk in iter(lambda: resp.read(_CHUNK_SIZE), b""):
                    w.write(chunk)
                    if hasher is not None:
                        hasher.update(chunk)
            if hasher is not None:
                actual = f"{algo}:{hasher.hexdigest()}"
                if actual != expected_digest:
                    raise DigestMismatchError(
                        f"expected digest {_q(expected_digest)}, got {_q(actual)}"
                    )
            w.flush()
            os.fsync(w.fileno())
    except BaseException:
        _remove_all(tmp_path)
        raise
    _remove_all(local_path)
    os.replace(tmp_path, local_path)


def download(
    local: str,
    remote: str,
    cache_dir: str | None = None,
    decompress: bool = False,
    description: str = "",
    expected_digest: str = "",
) -> Result:
    """Download ``remote`` into ``local``.

    When ``local`` already exists, nothing is done and the status is SKIPPED.
    ``local`` may be empty for caching-only mode, which requires ``cache_dir``.
    Local sources (plain paths or ``file://``) are never cached.
    """
    if expected_digest:
        parse_digest(expected_digest)
    validated = bool(expected_digest)

    local_path = ""
    if not local:
        if not cache_dir:
            raise DownloadError(
                "caching-only mode requires the cache directory to be specified"
            )
    else:
        local_path = _canonical_local_path(local)
        try:
            os.stat(local_path)
        except FileNotFoundError:
            pass
        else:
            logger.debug(
                "file %s already exists, skipping downloading from %s "
                "(and skipping digest validation)", _q(local_path), _q(remote),
            )
            return Result(status=Status.SKIPPED, validated_digest=False)
        os.makedirs(os.path.dirname(local_path), mode=0o755, exist_ok=True)

    ext = _ext(remote)
    if is_local(remote):
        _copy_local(local_path, remote, ext, decompress, description, expected_digest)
        return Result(status=Status.DOWNLOADED, validated_digest=validated)

    if not cache_dir:
        _download_http(local_path, remote, description, expected_digest)
        return Result(status=Status.DOWNLOADED, validated_digest=validated)

    shad = os.path.join(
        cache_dir, "download", "by-url-sha256", hashlib.sha256(remote.encode()).hexdigest()
    )
    shad_data = os.path.join(shad, "data")
    shad_digest = ""
    if expected_digest:
        algo = expected_digest.partition(":")[0]
        if "/" in algo or "\\" in algo:
            raise DownloadError(f"invalid digest algorithm {_q(algo)}")
        shad_digest = os.path.join(shad, algo + ".digest")

    if os.path.exists(shad_data):
        logger.debug("file %s is cached as %s", _q(local_path), _q(shad_data))
        cached_digest = None
        if shad_digest:
            try:
                with open(shad_digest, encoding="utf-8") as f:
                    cached_digest = f.read().strip()
            except OSError:
                cached_digest = None
        if cached_digest is not None:
            if expected_digest != cached_digest:
                raise DigestMismatchError(
                    f"expected digest {_q(expected_digest)} does not match "
                    f"the cached digest {_q(cached_digest)}"
                )
            _copy_local(local_path, shad_data, ext, decompress, "", "")
        else:
            _copy_local(local_path, shad_data, ext, decompress, description, expected_digest)
        return Result(status=Status.USED_CACHE, cache_path=shad_data, validated_digest=validated)

    _remove_all(shad)
    os.makedirs(shad, mode=0o700)
    with open(os.path.join(shad, "url"), "w", encoding="utf-8") as f:
        f.write(remote)
    _download_http(shad_data, remote, description, expected_digest)
    # the digest was already verified while downloading
    _copy_local(local_path, shad_data, ext, decompress, "", "")
    if shad_digest:
        with open(shad_digest, "w", encoding="utf-8") as f:
            f.write(expected_digest)
    return Result(status=Status.DOWNLOADED, cache_path=shad_data, validated_digest=validated)