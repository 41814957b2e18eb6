"""Building the argument list of an scp invocation between host and instances."""

from __future__ import annotations

import json
import logging
from typing import Mapping, Sequence

logger = logging.getLogger(__name__)

_LOCALHOST = "127.0.0.1"


def _q(s: str) -> str:
    return json.dumps(s, ensure_ascii=False)


def build_scp_args(
    args: Sequence[str],
    username: str,
    ssh_ports: Mapping[str, int],
    legacy_ssh: bool = False,
    recursive: bool = False,
    debug: bool = False,
) -> tuple[list[str], list[str]]:
    """Translate ``copy`` arguments into scp arguments.

    Guest paths are written ``INSTANCE:PATH``. ``ssh_ports`` maps the names of
    running instances to their local SSH port. Returns the scp arguments
    (flags first) and the names of the instances involved, in first-seen order.
    """
    flags: list[str] = []
    scp_args: list[str] = []
    instances: list[str] = []
    if debug:
        flags.append("-v")
    if recursive:
        flags.append("-r")
    for arg in args:
        parts = arg.split(":")
        if len(parts) == 1:
            scp_args.append(arg)
            continue
        if len(parts) != 2:
            raise ValueError(f"path {_q(arg)} contains multiple colons")
        inst_name, path = parts
        if inst_name not in ssh_ports:
            raise LookupError(
                f"instance {_q(inst_name)} does not exist or is stopped, run "
                f"`limactl start {inst_name}` to start the instance"
            )
        port = ssh_ports[inst_name]
        if legacy_ssh:
            flags.extend(["-P", str(port)])
            scp_args.append(f"{username}@{_LOCALHOST}:{path}")
        else:
            scp_args.append(f"scp://{username}@{_LOCALHOST}:{port}/{path}")
        if inst_name not in instances:
            instances.append(inst_name)
    if legacy_ssh and len(instances) > 1:
        raise ValueError(
            "More than one (instance) host is involved in this command, "
            "this is only supported for openSSH v8.0 or higher"
        )
    flags.extend(["-3", "--"])
    full = flags + scp_args
    logger.debug("scp arguments: %s", full)
    return full, instances