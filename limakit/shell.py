"""Building the remote command line for a shell inside an instance."""

from __future__ import annotations

import logging
import shlex
from typing import Sequence

logger = logging.getLogger(__name__)


def is_env(arg: str) -> bool:
    """Return whether ``arg`` looks like an environment assignment (NAME=value)."""
    return len(arg.split("=")) > 1


def quote_env(arg: str) -> str:
    """Quote the value of a NAME=value assignment, leaving the name as it is."""
    name, value = arg.split("=", 1)
    return name + "=" + shlex.quote(value)


def strip_double_dash(args: Sequence[str]) -> list[str]:
    """Drop a ``--`` that directly follows the instance name."""
    args = list(args)
    if len(args) >= 2 and args[1] == "--":
        return args[:1] + args[2:]
    return args


def change_dir_command(
    workdir: str, has_mounts: bool, cwd: str | None, home: str | None
) -> str:
    """Return the shell command that changes to the working directory in the guest.

    ``cwd`` and ``home`` are None when the host's current or home directory is unknown.
    """
    cmd = ""
    if workdir:
        cmd = f"cd {shlex.quote(workdir)} || exit 1"
    elif has_mounts:
        if cwd is not None:
            cmd = f"cd {shlex.quote(cwd)}"
        else:
            cmd = "false"
            logger.warning("failed to get the current directory")
        if home is not None:
            cmd = f"{cmd} || cd {shlex.quote(home)}"
        else:
            logger.warning("failed to get the home directory")
    else:
        logger.debug(
            "the host home does not seem mounted, so the guest shell will have a different cwd"
        )
    if not cmd:
        cmd = "false"
    logger.debug("changeDirCmd=%r", cmd)
    return cmd


def build_shell_script(change_dir_cmd: str, shell: str, command_args: Sequence[str]) -> str:
    """Build the script run by the remote login shell.

    Leading NAME=value arguments keep their names unquoted so that they act as
    environment assignments.
    """
    shell_expr = shlex.quote(shell) if shell else '"$SHELL"'
    script = f"{change_dir_cmd} ; exec {shell_expr} --login"
    if command_args:
        quoted = []
        parsing_env = True
        for arg in command_args:
            if parsing_env and is_env(arg):
                quoted.append(quote_env(arg))
            else:
                parsing_env = False
                quoted.append(shlex.quote(arg))
        script += " -c " + shlex.quote(" ".join(quoted))
    return script