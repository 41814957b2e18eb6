"""Command-line flags that modify an instance configuration through yq expressions."""

from __future__ import annotations

import argparse
import csv
import ipaddress
import json
import logging
import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Mapping

logger = logging.getLogger(__name__)


class _SliceAction(argparse.Action):
    """Accumulate comma-separated values over repeated occurrences of a flag."""

    def __init__(self, *args: Any, item_type: Callable[[str], Any] = str, **kwargs: Any):
        self._item_type = item_type
        super().__init__(*args, **kwargs)

    def __call__(self, parser, namespace, values, option_string=None):
        items = list(getattr(namespace, self.dest, None) or [])
        rows = list(csv.reader([values]))
        for field in rows[0] if rows else []:
            try:
                items.append(self._item_type(field))
            except ValueError as e:
                raise argparse.ArgumentError(self, str(e)) from e
        setattr(namespace, self.dest, items)


def _ip(value: str) -> str:
    return str(ipaddress.ip_address(value.strip()))


def register_edit(parser: argparse.ArgumentParser, comment_prefix: str = "") -> None:
    """Register the flags for in-place modification of an existing configuration."""
    p = comment_prefix
    unset = argparse.SUPPRESS
    parser.add_argument("--cpus", dest="cpus", type=int, default=unset, help=p + "number of CPUs")
    parser.add_argument(
        "--dns", dest="dns", action=_SliceAction, item_type=_ip, default=unset,
        help=p + "specify custom DNS (disable host resolver)",
    )
    parser.add_argument("--memory", dest="memory", type=float, default=unset, help=p + "memory in GiB")
    parser.add_argument(
        "--mount", dest="mount", action=_SliceAction, default=unset,
        help=p + "directories to mount, suffix ':w' for writable "
        "(Do not specify directories that overlap with the existing mounts)",
    )
    parser.add_argument(
        "--mount-type", dest="mount-type", default=unset,
        help=p + "mount type (reverse-sshfs, 9p, virtiofs)",
    )
    parser.add_argument(
        "--mount-writable", dest="mount-writable", action="store_true", default=unset,
        help=p + "make all mounts writable",
    )
    parser.add_argument(
        "--network", dest="network", action=_SliceAction, default=unset,
        help=p + 'additional networks, e.g., "vzNAT" or "lima:shared" to assign vmnet IP',
    )
    parser.add_argument(
        "--rosetta", dest="rosetta", action="store_true", default=unset,
        help=p + "enable Rosetta (for vz instances)",
    )
    parser.add_argument(
        "--set", dest="set", default=unset,
        help=p + "modify the template inplace, using yq syntax",
    )
    parser.add_argument(
        "--video", dest="video", action="store_true", default=unset,
        help=p + "enable video output (has negative performance impact for QEMU)",
    )


def register_create(parser: argparse.ArgumentParser, comment_prefix: str = "") -> None:
    """Register the edit flags plus those only valid when creating an instance."""
    register_edit(parser, comment_prefix)
    p = comment_prefix
    unset = argparse.SUPPRESS
    parser.add_argument(
        "--arch", dest="arch", default=unset,
        help=p + "machine architecture (x86_64, aarch64, riscv64)",
    )
    parser.add_argument(
        "--containerd", dest="containerd", default=unset,
        help=p + "containerd mode (user, system, user+system, none)",
    )
    parser.add_argument("--disk", dest="disk", type=float, default=unset, help=p + "disk size in GiB")
    parser.add_argument(
        "--vm-type", dest="vm-type", default=unset,
        help=p + "virtual machine type (qemu, vz)",
    )


def _quote(s: str) -> str:
    return json.dumps(s, ensure_ascii=False)


def _format_float(value: float) -> str:
    """Format a float the shortest way, switching to exponent form at 1e+06."""
    f = float(value)
    if math.isnan(f):
        return "NaN"
    if math.isinf(f):
        return "+Inf" if f > 0 else "-Inf"
    if f == 0:
        return "-0" if math.copysign(1.0, f) < 0 else "0"
    sign, digit_tuple, exp = Decimal(repr(f)).as_tuple()
    digits = list(digit_tuple)
    while len(digits) > 1 and digits[-1] == 0:
        digits.pop()
        exp += 1
    s = "".join(map(str, digits))
    nd = len(s)
    dp = nd + exp
    x = dp - 1
    prefix = "-" if sign else ""
    if x < -4 or x >= 6:
        mantissa = s[0] + ("." + s[1:] if nd > 1 else "")
        esign = "+" if x >= 0 else "-"
        return f"{prefix}{mantissa}e{esign}{abs(x):02d}"
    if dp <= 0:
        return f"{prefix}0.{'0' * -dp}{s}"
    if dp >= nd:
        return f"{prefix}{s}{'0' * (dp - nd)}"
    return f"{prefix}{s[:dp]}.{s[dp:]}"


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return _format_float(value)
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(str(v) for v in value) + "]"
    return str(value)


def _as_list(value: Any) -> list[str]:
    if isinstance(value, str):
        rows = list(csv.reader([value]))
        return rows[0] if rows else []
    return [str(v) for v in value]


def _plain(template: str) -> Callable[[Any], str]:
    return lambda value: template % _format_value(value)


def _quoted(template: str) -> Callable[[Any], str]:
    return lambda value: template % _quote(_format_value(value))


def _dns_expr(value: Any) -> str:
    ips = [_ip(v) for v in _as_list(value)]
    expr = ".dns += [" + ",".join(_quote(ip) for ip in ips)
    expr += "] | .dns |= unique | .hostResolver.enabled=false"
    logger.warning(
        "Disabling HostResolver, as custom DNS addresses ([%s]) are specified", " ".join(ips)
    )
    return expr


def _mount_expr(value: Any) -> str:
    entries = []
    for s in _as_list(value):
        writable = s.endswith(":w")
        loc = s.removesuffix(":w")
        entries.append(
            '{"location": %s, "writable": %s}' % (_quote(loc), "true" if writable else "false")
        )
    return ".mounts += [" + ",".join(entries) + "] | .mounts |= unique_by(.location)"


def _network_expr(value: Any) -> str:
    entries = []
    for s in _as_list(value):
        if s == "vzNAT":
            entries.append('{"vzNAT": true}')
        elif s.startswith("lima:"):
            entries.append('{"lima": %s}' % _quote(s.removeprefix("lima:")))
        else:
            raise ValueError(f'network name must be "vzNAT" or "lima:*", got {_quote(s)}')
    return ".networks += [" + ",".join(entries) + "] | .networks |= unique_by(.lima)"


def _rosetta_expr(value: Any) -> str:
    b = _format_value(bool(value))
    return f".rosetta.enabled = {b} | .rosetta.binfmt = {b}"


def _video_expr(value: Any) -> str:
    if value:
        return '.video.display = "default"'
    return '.video.display = "none"'


_CONTAINERD_MODES = {
    "user": ".containerd.user = true | .containerd.system = false",
    "system": ".containerd.user = false | .containerd.system = true",
    "user+system": ".containerd.user = true | .containerd.system = true",
    "system+user": ".containerd.user = true | .containerd.system = true",
    "none": ".containerd.user = false | .containerd.system = false",
}


def _containerd_expr(value: Any) -> str:
    s = str(value)
    try:
        return _CONTAINERD_MODES[s]
    except KeyError:
        raise ValueError(
            f'expected one of ["user", "system", "user+system", "none"], got {_quote(s)}'
        ) from None


@dataclass(frozen=True)
class _Def:
    flag_name: str
    expr: Callable[[Any], str]
    only_valid_for_new_instances: bool = False
    experimental: bool = False


_DEFS = (
    _Def("cpus", _plain(".cpus = %s")),
    _Def("dns", _dns_expr),
    _Def("memory", _plain('.memory = "%sGiB"')),
    _Def("mount", _mount_expr),
    _Def("mount-type", _quoted(".mountType = %s")),
    _Def("mount-writable", _plain(".mounts[].writable = %s")),
    _Def("network", _network_expr, experimental=True),
    _Def("rosetta", _rosetta_expr, experimental=True),
    _Def("set", _plain("%s"), experimental=True),
    _Def("video", _video_expr, experimental=True),
    _Def("arch", _quoted(".arch = %s"), only_valid_for_new_instances=True),
    _Def("containerd", _containerd_expr, only_valid_for_new_instances=True),
    _Def("disk", _plain('.disk= "%sGiB"'), only_valid_for_new_instances=True),
    _Def("vm-type", _quoted(".vmType = %s"), only_valid_for_new_instances=True),
)


def yq_expressions(changed: Mapping[str, Any], new_instance: bool) -> list[str]:
    """Return yq expressions for the flags given in ``changed`` (flag name to value)."""
    exprs: list[str] = []
    for d in _DEFS:
        if d.flag_name not in changed:
            continue
        value = changed[d.flag_name]
        if d.experimental:
            logger.warning("`--%s` is experimental", d.flag_name)
        if d.only_valid_for_new_instances and not new_instance:
            logger.warning(
                "`--%s` is not applicable to an existing instance (Hint: create a new "
                "instance with `limactl create --%s=%s --name=NAME`)",
                d.flag_name, d.flag_name, _format_value(value),
            )
            continue
        try:
            exprs.append(d.expr(value))
        except ValueError as e:
            raise ValueError(f"error while processing flag {_quote(d.flag_name)}: {e}") from e
    return exprs


def is_power_of_two(x: int) -> bool:
    return bin(x & 0xFFFFFFFFFFFFFFFF).count("1") == 1


def complete_cpus(host_cpus: int) -> list[int]:
    """Suggest CPU counts: powers of two up to the host count, plus the host count."""
    res = []
    i = 1
    while i <= host_cpus:
        res.append(i)
        i *= 2
    if not is_power_of_two(host_cpus):
        res.append(host_cpus)
    return res


def complete_memory_gib(host_memory: int) -> list[float]:
    """Suggest memory sizes in GiB, up to half of the host memory."""
    half_gib = host_memory // 2 // 1024 // 1024 // 1024
    res: list[float] = []
    if half_gib < 1:
        res.append(0.5)
    i = 1
    while i <= half_gib:
        res.append(float(i))
        i *= 2
    if half_gib > 1 and not is_power_of_two(half_gib):
        res.append(float(half_gib))
    return res