"""File housekeeping for instance directories, generated documents and the cache."""

from __future__ import annotations

import json
import logging
import os
import shutil

from limakit.downloader import default_cache_dir

logger = logging.getLogger(__name__)

_RUNTIME_SUFFIXES = (".pid", ".sock", ".tmp")
_CONFIG_SUFFIXES = (".yaml", ".yml")


def _q(s: str) -> str:
    return json.dumps(s, ensure_ascii=False)


def _remove(path: str) -> bool:
    try:
        if os.path.isdir(path) and not os.path.islink(path):
            os.rmdir(path)
        else:
            os.remove(path)
    except OSError as e:
        logger.error("%s", e)
        return False
    return True


def remove_runtime_files(inst_dir: str) -> list[str]:
    """Remove pid files, sockets and temporary files of a stopped instance.

    Returns the paths removed; failures are logged, not raised.
    """
    logger.info(
        "Removing %s under %s", " ".join("*" + s for s in _RUNTIME_SUFFIXES), _q(inst_dir)
    )
    try:
        names = sorted(os.listdir(inst_dir))
    except OSError as e:
        logger.error("%s", e)
        return []
    removed = []
    for name in names:
        path = os.path.join(inst_dir, name)
        if path.endswith(_RUNTIME_SUFFIXES):
            logger.info("Removing %s", _q(path))
            if _remove(path):
                removed.append(path)
    return removed


def factory_reset_files(inst_dir: str) -> list[str]:
    """Remove everything in the instance directory except YAML files.

    Returns the paths removed. Raises OSError when the directory cannot be read.
    """
    removed = []
    for name in sorted(os.listdir(inst_dir)):
        path = os.path.join(inst_dir, name)
        if path.endswith(_CONFIG_SUFFIXES):
            continue
        logger.info("Removing %s", _q(path))
        if _remove(path):
            removed.append(path)
    return removed


def replace_all(directory: str, old: str, new: str) -> list[str]:
    """Replace ``old`` with ``new`` in every file directly inside ``directory``.

    Subdirectories are not descended into. Returns the files rewritten.
    """
    logger.info("Replacing %s with %s", _q(old), _q(new))
    old_b, new_b = old.encode(), new.encode()
    written = []
    for name in sorted(os.listdir(directory)):
        path = os.path.join(directory, name)
        if os.path.isdir(path):
            continue
        with open(path, "rb") as f:
            data = f.read()
        with open(path, "wb") as f:
            f.write(data.replace(old_b, new_b))
        written.append(path)
    return written


def prune_cache(cache_dir: str | None = None) -> str:
    """Remove the download cache directory and return its path."""
    target = cache_dir if cache_dir is not None else default_cache_dir()
    logger.info("Pruning %s", _q(target))
    if os.path.isdir(target) and not os.path.islink(target):
        shutil.rmtree(target)
    else:
        try:
            os.unlink(target)
        except FileNotFoundError:
            pass
    return target