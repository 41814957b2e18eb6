"""Cloud-init data for an instance: template arguments, proxy environment and layout."""

from __future__ import annotations

import ipaddress
import json
import logging
import os
import posixpath
import shutil
import socket
from dataclasses import dataclass, field
from typing import BinaryIO, Callable, Iterable, Mapping, Sequence, Union
from urllib.parse import urlsplit

from limakit.guessarg import validate_identifier

logger = logging.getLogger(__name__)

_LOWER_PROXY_VARS = ("ftp_proxy", "http_proxy", "https_proxy", "no_proxy")
_UPPER_PROXY_VARS = tuple(name.upper() for name in _LOWER_PROXY_VARS)
_PROVISION_MODE_BOOT = "boot"


def _q(s: str) -> str:
    return json.dumps(s, ensure_ascii=False)


@dataclass
class Mount:
    tag: str = ""
    mount_point: str = ""
    type: str = ""
    options: str = ""


@dataclass
class Disk:
    name: str
    device: str
    format: bool = True
    fs_type: str = ""
    fs_args: list[str] = field(default_factory=list)


@dataclass
class Network:
    mac_address: str
    interface: str


@dataclass
class Cert:
    lines: list[str] = field(default_factory=list)


@dataclass
class BootCmds:
    lines: list[str] = field(default_factory=list)


@dataclass
class Provision:
    mode: str
    script: str
    skip_default_dependency_resolution: bool | None = None


@dataclass
class Entry:
    """A file of the cloud-init layout: a relative path and its content."""

    path: str
    content: Union[bytes, str, BinaryIO] = b""


@dataclass
class TemplateArgs:
    name: str = ""
    iid: str = ""
    user: str = ""
    home: str = ""
    uid: int = 0
    ssh_pub_keys: list[str] = field(default_factory=list)
    mounts: list[Mount] = field(default_factory=list)
    mount_type: str = ""
    disks: list[Disk] = field(default_factory=list)
    guest_install_prefix: str = ""
    containerd_system: bool = False
    containerd_user: bool = False
    networks: list[Network] = field(default_factory=list)
    slirp_nic_name: str = ""
    slirp_gateway: str = ""
    slirp_dns: str = ""
    slirp_ip_address: str = ""
    udp_dns_local_port: int = 0
    tcp_dns_local_port: int = 0
    env: dict[str, str] = field(default_factory=dict)
    dns_addresses: list[str] = field(default_factory=list)
    ca_certs_remove_defaults: bool | None = None
    ca_certs_trusted: list[Cert] = field(default_factory=list)
    host_home_mount_point: str = ""
    boot_cmds: list[BootCmds] = field(default_factory=list)
    rosetta_enabled: bool = False
    rosetta_bin_fmt: bool = False
    skip_default_dependency_resolution: bool = False
    vm_type: str = ""
    vsock_port: int = 0


def validate_template_args(args: TemplateArgs) -> None:
    """Raise ValueError when the template arguments are not usable."""
    validate_identifier(args.name)
    validate_identifier(args.user)
    if args.user == "root":
        raise ValueError('field User must not be "root"')
    if args.uid == 0:
        raise ValueError("field UID must not be 0")
    if not args.home:
        raise ValueError("field Home must be set")
    if not args.ssh_pub_keys:
        raise ValueError("field SSHPubKeys must be set")
    for i, m in enumerate(args.mounts):
        if not m.mount_point.startswith("/"):
            raise ValueError(f"field mounts[{i}] must be absolute, got {_q(m.mount_point)}")


def _default_lookup_ip(host: str) -> list[str]:
    try:
        infos = socket.getaddrinfo(host, None)
    except (OSError, UnicodeError) as e:
        logger.debug("lookup %s: %s", host, e)
        return []
    return [info[4][0] for info in infos]


def _is_loopback(ip: object) -> bool:
    try:
        return ipaddress.ip_address(str(ip).split("%", 1)[0]).is_loopback
    except ValueError:
        return False


def _join_host_port(host: str, port: str) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


@dataclass
class _ProxyURL:
    prefix: str
    userinfo: str
    hostname: str
    port: str
    suffix: str

    def with_host(self, host: str) -> str:
        netloc = (self.userinfo + "@" if self.userinfo else "") + host
        return self.prefix + netloc + self.suffix


def _parse_proxy_url(value: str) -> _ProxyURL:
    """Split a URL so that its host can be replaced while keeping the rest verbatim."""
    if value.startswith(":"):
        raise ValueError("missing protocol scheme")
    try:
        parts = urlsplit(value)
    except ValueError as e:
        raise ValueError(str(e)) from e
    scheme_len = len(parts.scheme)
    if not parts.netloc or value[scheme_len:scheme_len + 3] != "://":
        return _ProxyURL(value, "", "", "", "")
    start = scheme_len + 3
    netloc = parts.netloc
    userinfo, at, hostport = netloc.rpartition("@")
    if not at:
        userinfo = ""
    if hostport.startswith("["):
        end = hostport.find("]")
        if end < 0:
            raise ValueError(f"missing ']' in host {_q(hostport)}")
        hostname = hostport[1:end]
        rest = hostport[end + 1:]
        if rest and not rest.startswith(":"):
            raise ValueError(f"invalid port {_q(rest)} after host")
        port = rest[1:]
    else:
        hostname, colon, port = hostport.rpartition(":")
        if not colon:
            hostname, port = hostport, ""
    if port and not port.isdigit():
        raise ValueError(f"invalid port {_q(':' + port)} after host")
    return _ProxyURL(
        value[:start], userinfo, hostname, port, value[start + len(netloc):]
    )


def setup_env(
    base_env: Mapping[str, str] | None = None,
    yaml_env: Mapping[str, str] | None = None,
    propagate_proxy_env: bool = False,
    slirp_gateway: str = "",
    lookup_ip: Callable[[str], Iterable[object]] | None = None,
) -> dict[str, str]:
    """Compute the guest environment, rewriting loopback proxies to the slirp gateway.

    ``base_env`` holds the system proxy settings, ``yaml_env`` the configured
    variables that override them; with ``propagate_proxy_env`` the proxy
    variables of the current process override both.
    """
    lookup = lookup_ip or _default_lookup_ip
    env = dict(base_env or {})
    env.update(yaml_env or {})
    all_vars = _LOWER_PROXY_VARS + _UPPER_PROXY_VARS

    if propagate_proxy_env:
        for name in all_vars:
            value = os.environ.get(name)
            if value is None:
                continue
            if name in env and env[name] != value:
                logger.info(
                    "Overriding %s value %s with %s from limactl process environment",
                    _q(name), _q(env[name]), _q(value),
                )
            env[name] = value

    for name in all_vars:
        if name not in env or name.lower() == "no_proxy":
            continue
        value = env[name]
        try:
            u = _parse_proxy_url(value)
        except ValueError as e:
            logger.warning("Ignoring invalid proxy %s=%s: %s", _q(name), value, e)
            continue
        ips = list(lookup(u.hostname)) if u.hostname else []
        for ip in ips:
            if _is_loopback(ip):
                new_host = slirp_gateway
                if u.port:
                    new_host = _join_host_port(new_host, u.port)
                value = u.with_host(new_host)
        if value != env[name]:
            logger.info("Replacing %s value %s with %s", _q(name), _q(env[name]), _q(value))
            env[name] = value

    for lower_name in _LOWER_PROXY_VARS:
        upper_name = lower_name.upper()
        if lower_name in env:
            if upper_name in env and env[lower_name] != env[upper_name]:
                logger.warning(
                    "Changing %s value from %s to %s to match %s",
                    _q(upper_name), _q(env[upper_name]), _q(env[lower_name]), _q(lower_name),
                )
            env[upper_name] = env[lower_name]
        elif upper_name in env:
            env[lower_name] = env[upper_name]
    return env


def _script_lines(content: str) -> list[str]:
    return [line.strip() for line in content.split("\n") if line != ""]


def get_cert(content: str) -> Cert:
    """Split PEM content into trimmed, non-empty lines."""
    return Cert(lines=_script_lines(content))


def get_boot_cmds(provisions: Sequence[Provision]) -> list[BootCmds]:
    """Collect the lines of every boot-mode provisioning script."""
    return [
        BootCmds(lines=_script_lines(p.script))
        for p in provisions
        if p.mode == _PROVISION_MODE_BOOT
    ]


def disk_device_name_from_order(order: int) -> str:
    """Return the guest device name of the additional disk at ``order`` (vdb, vdc, ...)."""
    return "vd" + chr(ord("b") + order)


def _remove_all(path: str) -> None:
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
    else:
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass


def write_cidata_dir(root_path: str, layout: Iterable[Entry]) -> None:
    """Write the layout as a directory tree under ``root_path``, replacing what was there."""
    entries = sorted(layout, key=lambda e: e.path.lower())
    _remove_all(root_path)
    for e in entries:
        d = posixpath.dirname(e.path) or "."
        if d != "/":
            os.makedirs(os.path.join(root_path, d), mode=0o700, exist_ok=True)
        target = os.path.join(root_path, e.path)
        fd = os.open(target, os.O_CREAT | os.O_RDWR, 0o700)
        with os.fdopen(fd, "wb") as f:
            content = e.content
            if isinstance(content, str):
                f.write(content.encode("utf-8"))
            elif isinstance(content, (bytes, bytearray)):
                f.write(content)
            else:
                shutil.copyfileobj(content, f)