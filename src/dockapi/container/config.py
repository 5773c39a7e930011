"""Build container configuration documents with CLI semantics.

:class:`ContainerConfig` accumulates the JSON document the engine expects on
``POST /containers/create``. Every operation mutates the document and
returns the builder, so calls chain the way flags stack on a command line::

    config = ContainerConfig().image("mysql:8").expose("3306").volume("/backup")

The same document can be produced from a ``docker run`` command line::

    config = ContainerConfig.from_cli("docker run -p 8080:80 -v /tmp:/tmp busybox")

Command-line spellings (``-p``, ``--publish``, ``--cap-add``...) are
resolved through the fixed :data:`FLAG_ALIASES` table into an :class:`Op`,
and :meth:`ContainerConfig.apply` dispatches an ``Op`` to the canonical
method. The builder performs syntax validation only; it does not detect
conflicting options such as ``--interactive`` together with ``--detach``.
"""

import json
import os
import re
import shlex
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from dockapi.errors import ArgumentError
from dockapi.logging import get_logger

logger = get_logger(__name__, component="container_config")

# Decimal multipliers, matching the engine CLI's historical behaviour.
MEMORY_UNITS = {"b": 1, "k": 1000, "m": 1000**2, "g": 1000**3}
_MEMORY = re.compile(r"^(\d+)([a-zA-Z]?)$")

NETWORK_MODES = {"bridge", "none", "host"}
RESTART_POLICIES = {"always", "no", "on-failure"}
DEFAULT_DEVICE_PERMISSIONS = "rwm"

# Words that may lead a pasted command line: ``docker run ...``.
LEADING_WORDS = {"docker", "run", "create"}

_LONG_WITH_VALUE = re.compile(r"^--([a-z][a-z\-]*)=(.*)$", re.DOTALL)
_LONG_FLAG = re.compile(r"^--([a-z][a-z\-]*)$")
_SHORT_OPTION = re.compile(r"^-([A-Za-z])(.*)$", re.DOTALL)


class Op(str, Enum):
    """Canonical builder operations."""

    ADD_HOST = "add_host"
    ATTACH = "attach"
    CAP_ADD = "cap_add"
    CAP_DROP = "cap_drop"
    CIDFILE = "cidfile"
    CMD = "cmd"
    CPU_SHARES = "cpu_shares"
    CPUSET = "cpuset"
    DETACH = "detach"
    DEVICE = "device"
    DNS = "dns"
    DNS_SEARCH = "dns_search"
    ENV = "env"
    ENV_FILE = "env_file"
    EXPOSE = "expose"
    HOSTNAME = "hostname"
    IMAGE = "image"
    INTERACTIVE = "interactive"
    LINK = "link"
    LXC_CONF = "lxc_conf"
    MEMORY = "memory"
    NAME = "name"
    NET = "net"
    PRIVILEGED = "privileged"
    PUBLISH = "publish"
    PUBLISH_ALL = "publish_all"
    RESTART = "restart"
    SECURITY_OPT = "security_opt"
    TTY = "tty"
    USER = "user"
    VOLUME = "volume"
    VOLUMES_FROM = "volumes_from"
    WORKDIR = "workdir"


# Operations that are switches on the command line and take no value.
BOOLEAN_OPS = frozenset({Op.DETACH, Op.INTERACTIVE, Op.PRIVILEGED, Op.PUBLISH_ALL, Op.TTY})

# Every command-line spelling of every operation.
FLAG_ALIASES: Dict[str, Op] = {
    "a": Op.ATTACH,
    "attach": Op.ATTACH,
    "add-host": Op.ADD_HOST,
    "extra-host": Op.ADD_HOST,
    "c": Op.CPU_SHARES,
    "cpu-shares": Op.CPU_SHARES,
    "cap-add": Op.CAP_ADD,
    "cap-drop": Op.CAP_DROP,
    "cidfile": Op.CIDFILE,
    "cpuset": Op.CPUSET,
    "cpuset-cpus": Op.CPUSET,
    "d": Op.DETACH,
    "detach": Op.DETACH,
    "device": Op.DEVICE,
    "dns": Op.DNS,
    "dns-search": Op.DNS_SEARCH,
    "e": Op.ENV,
    "env": Op.ENV,
    "env-file": Op.ENV_FILE,
    "expose": Op.EXPOSE,
    "h": Op.HOSTNAME,
    "hostname": Op.HOSTNAME,
    "i": Op.INTERACTIVE,
    "interactive": Op.INTERACTIVE,
    "link": Op.LINK,
    "lxc-conf": Op.LXC_CONF,
    "m": Op.MEMORY,
    "memory": Op.MEMORY,
    "name": Op.NAME,
    "net": Op.NET,
    "network": Op.NET,
    "p": Op.PUBLISH,
    "publish": Op.PUBLISH,
    "P": Op.PUBLISH_ALL,
    "publish-all": Op.PUBLISH_ALL,
    "privileged": Op.PRIVILEGED,
    "restart": Op.RESTART,
    "security-opt": Op.SECURITY_OPT,
    "t": Op.TTY,
    "tty": Op.TTY,
    "u": Op.USER,
    "user": Op.USER,
    "v": Op.VOLUME,
    "volume": Op.VOLUME,
    "volumes-from": Op.VOLUMES_FROM,
    "w": Op.WORKDIR,
    "workdir": Op.WORKDIR,
}


def parse_memory(value: Union[str, int]) -> int:
    """Convert a memory limit such as ``512m`` into bytes.

    Units are ``b``, ``k``, ``m`` and ``g`` with decimal multipliers
    (``1k == 1000``). A bare number is taken as bytes.

    Raises:
        ArgumentError: If the value or its unit is not recognized.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    match = _MEMORY.match(str(value).strip())
    if not match:
        raise ArgumentError(f"Invalid memory limit format: {value}")
    amount, unit = match.groups()
    if unit and unit not in MEMORY_UNITS:
        raise ArgumentError(f"Invalid memory limit unit: {value}")
    return int(amount) * MEMORY_UNITS.get(unit, 1)


def split_proto_port(port: str) -> Tuple[str, str]:
    """Split ``80/udp`` into ``("80", "udp")``; protocol defaults to tcp."""
    port, _, proto = port.partition("/")
    return port, proto or "tcp"


class ContainerConfig:
    """Fluent builder for a container configuration document.

    The document is available as :attr:`options` and always holds a
    ``HostConfig`` mapping.
    """

    def __init__(self, options: Optional[Dict[str, Any]] = None):
        """Initialize builder.

        Args:
            options: Initial document. It is copied, not aliased.
        """
        self.options: Dict[str, Any] = dict(options or {})
        self.options.setdefault("HostConfig", {})

    # ------------------------------------------------------------------
    # Command-line interpreter
    # ------------------------------------------------------------------

    @classmethod
    def from_cli(cls, cli: Union[str, List[str]]) -> "ContainerConfig":
        """Build a config from a ``docker run``/``docker create`` command line.

        Leading ``docker``, ``run`` and ``create`` words are ignored. Options
        are recognized until the first word after the image; that word and
        everything following it form the command.

        Example:
            config = ContainerConfig.from_cli("-it -p 8080:80 --name=web busybox sh")

        Args:
            cli: The command line, or an already tokenized word list.

        Raises:
            ArgumentError: For unknown options, missing option values, or
                any value an operation rejects.
        """
        tokens = shlex.split(cli) if isinstance(cli, str) else list(cli)
        config = cls()
        image_seen = False
        index = 0

        while index < len(tokens):
            token = tokens[index]

            if not image_seen and token in LEADING_WORDS:
                index += 1
                continue

            match = _LONG_WITH_VALUE.match(token)
            if match:
                config.apply(_lookup_flag(match.group(1), token), match.group(2))
                index += 1
                continue

            match = _LONG_FLAG.match(token)
            if match:
                op = _lookup_flag(match.group(1), token)
                if op in BOOLEAN_OPS:
                    config.apply(op)
                    index += 1
                else:
                    config.apply(op, _flag_value(tokens, index))
                    index += 2
                continue

            match = _SHORT_OPTION.match(token)
            if match:
                letter, attached = match.groups()
                op = _lookup_flag(letter, token)
                if op not in BOOLEAN_OPS:
                    # ``-p 8080:80`` or ``-p8080:80``.
                    if attached:
                        config.apply(op, attached)
                        index += 1
                    else:
                        config.apply(op, _flag_value(tokens, index))
                        index += 2
                    continue
                # One switch, or several clustered switches such as ``-it``.
                ops = [op] + [_lookup_flag(other, token) for other in attached]
                if any(switch not in BOOLEAN_OPS for switch in ops):
                    raise ArgumentError(f"Only switches can be combined: {token}")
                for op in ops:
                    config.apply(op)
                index += 1
                continue

            if token.startswith("-"):
                raise ArgumentError(f"Unknown option: {token}")

            if not image_seen:
                config.apply(Op.IMAGE, token)
                image_seen = True
                index += 1
                continue

            config.apply(Op.CMD, *tokens[index:])
            break

        logger.debug("cli_parsed", tokens=len(tokens), image=config.options.get("Image"))
        return config

    def apply(self, op: Op, *values: Any) -> "ContainerConfig":
        """Run the canonical operation ``op`` with ``values``."""
        return _OPERATIONS[op](self, *values)

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Return the configuration document (not a copy)."""
        return self.options

    def to_json(self) -> str:
        return json.dumps(self.options, separators=(",", ":"))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ContainerConfig):
            return NotImplemented
        return self.options == other.options

    def __repr__(self) -> str:
        return f"ContainerConfig({self.options!r})"

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @property
    def host_config(self) -> Dict[str, Any]:
        return self.options["HostConfig"]

    def _extend_host_list(self, key: str, values: Tuple[str, ...]) -> "ContainerConfig":
        self.host_config.setdefault(key, []).extend(values)
        return self

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def add_host(self, *hosts: str) -> "ContainerConfig":
        """Add ``host:ip`` entries to the container's hosts file."""
        return self._extend_host_list("ExtraHosts", hosts)

    def attach(self, *streams: str) -> "ContainerConfig":
        """Attach to ``stdin``, ``stdout``, ``stderr`` or ``all`` of them.

        Raises:
            ArgumentError: For any other stream name.
        """
        for stream in streams:
            name = stream.lower()
            if name == "all":
                self.options.update(AttachStdin=True, AttachStdout=True, AttachStderr=True)
            elif name in ("stdin", "stdout", "stderr"):
                self.options[f"Attach{name.capitalize()}"] = True
            else:
                raise ArgumentError(f"{stream} is not a valid stream for attach")
        return self

    def cap_add(self, *capabilities: str) -> "ContainerConfig":
        """Enable Linux capabilities."""
        return self._extend_host_list("CapAdd", capabilities)

    def cap_drop(self, *capabilities: str) -> "ContainerConfig":
        """Drop Linux capabilities."""
        return self._extend_host_list("CapDrop", capabilities)

    def cidfile(self, path: str) -> "ContainerConfig":
        if not path.startswith("/"):
            raise ArgumentError(f"ContainerID file path is not absolute: {path}")
        self.options["ContainerIDFile"] = path
        return self

    def cmd(self, *args: str) -> "ContainerConfig":
        """Set the command.

        A single string is split with shell quoting rules, so
        ``cmd("sh -c 'echo hi'")`` yields ``["sh", "-c", "echo hi"]``.
        """
        if len(args) == 1 and isinstance(args[0], str):
            self.options["Cmd"] = shlex.split(args[0])
        else:
            self.options["Cmd"] = list(args)
        return self

    def cpu_shares(self, share: Union[str, int]) -> "ContainerConfig":
        try:
            self.options["CpuShares"] = int(share)
        except ValueError as e:
            raise ArgumentError(f"Invalid CPU share: {share}") from e
        return self

    def cpuset(self, cpus: str) -> "ContainerConfig":
        self.options["Cpuset"] = cpus
        return self

    def detach(self) -> "ContainerConfig":
        """Run without attaching any stream or TTY."""
        self.options.update(
            AttachStdin=False,
            AttachStdout=False,
            AttachStderr=False,
            Tty=False,
            StdinOnce=False,
        )
        return self

    def device(self, *devices: str) -> "ContainerConfig":
        """Map host devices into the container.

        Each device is ``path``, ``host:container`` or
        ``host:container:permissions``; permissions default to ``rwm``.

        Raises:
            ArgumentError: If a device has any other shape.
        """
        mappings = self.host_config.setdefault("Devices", [])
        for device in devices:
            parts = device.split(":")
            if len(parts) == 1:
                src = dst = parts[0]
                permissions = DEFAULT_DEVICE_PERMISSIONS
            elif len(parts) == 2:
                src, dst = parts
                permissions = DEFAULT_DEVICE_PERMISSIONS
            elif len(parts) == 3:
                src, dst, permissions = parts
            else:
                raise ArgumentError(f"Invalid device specification: {device}")
            mappings.append(
                {
                    "PathOnHost": src,
                    "PathInContainer": dst,
                    "CgroupPermissions": permissions,
                }
            )
        return self

    def dns(self, *servers: str) -> "ContainerConfig":
        return self._extend_host_list("Dns", servers)

    def dns_search(self, *domains: str) -> "ContainerConfig":
        return self._extend_host_list("DnsSearch", domains)

    def env(self, *variables: str) -> "ContainerConfig":
        """Add environment variables.

        ``KEY=value`` entries are stored verbatim. A bare ``KEY`` copies the
        variable from the current process environment (empty if unset).
        """
        env = self.options.setdefault("Env", [])
        for variable in variables:
            if "=" in variable:
                env.append(variable)
            else:
                env.append(f"{variable}={os.environ.get(variable, '')}")
        return self

    def env_file(self, *paths: str) -> "ContainerConfig":
        """Add environment variables read from files.

        Blank lines and lines starting with ``#`` are skipped; other lines
        follow the same rules as :meth:`env`.

        Raises:
            ArgumentError: If a file is missing or a key contains whitespace.
        """
        env = self.options.setdefault("Env", [])
        for path in paths:
            if not os.path.isfile(path):
                raise ArgumentError(f"Environment file does not exist: {path}")
            with open(path) as f:
                for raw in f:
                    line = raw.strip()
                    if not line or line.startswith("#"):
                        continue
                    if "=" in line:
                        key, value = line.split("=", 1)
                        if re.search(r"\s", key):
                            raise ArgumentError(f"Variable {key!r} has white spaces")
                        env.append(f"{key}={value}")
                    else:
                        env.append(f"{line}={os.environ.get(line, '')}")
        return self

    def expose(self, *ports: str) -> "ContainerConfig":
        """Expose ports or port ranges without publishing them.

        Accepts ``80``, ``80/udp`` and ranges such as ``8000-8010/tcp``.

        Raises:
            ArgumentError: For host bindings (``:``) or non-numeric ports.
        """
        exposed = self.options.setdefault("ExposedPorts", {})
        for spec in ports:
            spec = str(spec)
            if ":" in spec:
                raise ArgumentError(f"Invalid port format for expose: {spec}")
            port, proto = split_proto_port(spec)
            if "-" in port:
                start, _, end = port.partition("-")
                if not (start.isdigit() and end.isdigit()) or int(start) > int(end):
                    raise ArgumentError(f"Invalid port range for expose: {spec}")
                for number in range(int(start), int(end) + 1):
                    exposed.setdefault(f"{number}/{proto}", {})
            elif port.isdigit():
                exposed.setdefault(f"{port}/{proto}", {})
            else:
                raise ArgumentError(f"Invalid port for expose: {spec}")
        return self

    def hostname(self, name: str) -> "ContainerConfig":
        self.options["Hostname"] = name
        return self

    def image(self, image_id: str) -> "ContainerConfig":
        self.options["Image"] = image_id
        return self

    def interactive(self) -> "ContainerConfig":
        """Keep stdin open even if not attached."""
        self.options["AttachStdin"] = True
        self.options["OpenStdin"] = True
        return self

    def link(self, *links: str) -> "ContainerConfig":
        """Link to other containers as ``name:alias``."""
        target = self.host_config.setdefault("Links", [])
        for link in links:
            if ":" not in link:
                raise ArgumentError(f"Invalid link format: {link}")
            target.append(link)
        return self

    def lxc_conf(self, *confs: str) -> "ContainerConfig":
        """Set raw ``key = value`` LXC options."""
        target = self.host_config.setdefault("LxcConf", {})
        for conf in confs:
            if "=" not in conf:
                raise ArgumentError(f"Invalid LXC configuration: {conf}")
            key, value = conf.split("=", 1)
            target[key.strip()] = value.strip()
        return self

    def memory(self, limit: Union[str, int]) -> "ContainerConfig":
        """Set the memory limit; see :func:`parse_memory`."""
        self.options["Memory"] = parse_memory(limit)
        return self

    def name(self, name: str) -> "ContainerConfig":
        """Name the container. Sent as a query parameter on create."""
        self.options["name"] = name
        return self

    def net(self, mode: str) -> "ContainerConfig":
        """Set the network mode: bridge, none, host or ``container:<name|id>``.

        Raises:
            ArgumentError: For any other mode or an empty container name.
        """
        kind, _, target = mode.partition(":")
        if kind == "container":
            if not target:
                raise ArgumentError("Invalid container format container:<name|id>")
        elif kind not in NETWORK_MODES or target:
            raise ArgumentError(f"Invalid network mode: {mode}")
        self.host_config["NetworkMode"] = mode
        return self

    def privileged(self) -> "ContainerConfig":
        self.host_config["Privileged"] = True
        return self

    def publish(self, *ports: str) -> "ContainerConfig":
        """Publish container ports to the host.

        Each port is ``[ip:][hostPort:]containerPort[/proto]``. Missing
        parts become empty strings. Every call adds one binding, so a
        container port may be bound several times.

        Raises:
            ArgumentError: If a port has more than three parts or no
                container port.
        """
        exposed = self.options.setdefault("ExposedPorts", {})
        bindings = self.host_config.setdefault("PortBindings", {})
        for spec in ports:
            raw, proto = str(spec), "tcp"
            if "/" in raw:
                raw, proto = raw.rsplit("/", 1)
            parts = raw.split(":")
            if len(parts) == 1:
                host_ip, host_port, container_port = "", "", parts[0]
            elif len(parts) == 2:
                host_ip, (host_port, container_port) = "", parts
            elif len(parts) == 3:
                host_ip, host_port, container_port = parts
            else:
                raise ArgumentError(f"Invalid port format for publish: {spec}")
            if not container_port:
                raise ArgumentError(f"No container port in: {spec}")

            key = f"{container_port}/{proto}"
            exposed.setdefault(key, {})
            bindings.setdefault(key, []).append({"HostPort": host_port, "HostIp": host_ip})
        return self

    def publish_all(self) -> "ContainerConfig":
        """Publish every exposed port to a random host port."""
        self.host_config["PublishAllPorts"] = True
        return self

    def restart(self, policy: str) -> "ContainerConfig":
        """Set the restart policy: ``no``, ``always`` or ``on-failure[:count]``.

        Raises:
            ArgumentError: For unknown policies or a count on anything but
                ``on-failure``.
        """
        if not policy:
            raise ArgumentError("Restart policy cannot be empty")
        parts = policy.split(":")
        name = parts[0]
        if name not in RESTART_POLICIES or len(parts) > 2:
            raise ArgumentError(f"Invalid restart policy: {policy}")

        max_retry_count = 0
        if len(parts) == 2:
            if name != "on-failure":
                raise ArgumentError(f"Maximum restart count not valid with restart policy of {name!r}")
            if not parts[1].isdigit():
                raise ArgumentError(f"Invalid maximum restart count: {policy}")
            max_retry_count = int(parts[1])

        self.host_config["RestartPolicy"] = {"Name": name, "MaximumRetryCount": max_retry_count}
        return self

    def security_opt(self, *opts: str) -> "ContainerConfig":
        return self._extend_host_list("SecurityOpt", opts)

    def tty(self) -> "ContainerConfig":
        self.options["Tty"] = True
        return self

    def user(self, user: str) -> "ContainerConfig":
        self.options["User"] = user
        return self

    def volume(self, *volumes: str) -> "ContainerConfig":
        """Declare volumes or bind host paths.

        ``/data`` declares an anonymous volume; ``/host:/data`` (optionally
        with a ``:ro``/``:rw`` mode) also binds the host path.

        Raises:
            ArgumentError: If the container path is ``/`` or missing.
        """
        for spec in volumes:
            paths = spec.split(":")
            if len(paths) > 3:
                raise ArgumentError(f"Invalid volume specification: {spec}")
            container_path = paths[1] if len(paths) > 1 else paths[0]
            if container_path == "/":
                raise ArgumentError("Invalid bind mount: destination can't be '/'")
            if not container_path:
                raise ArgumentError(f"Invalid volume specification: {spec}")
            self.options.setdefault("Volumes", {}).setdefault(container_path, {})
            if len(paths) > 1:
                self.host_config.setdefault("Binds", []).append(spec)
        return self

    def volumes_from(self, *containers: str) -> "ContainerConfig":
        return self._extend_host_list("VolumesFrom", containers)

    def workdir(self, path: str) -> "ContainerConfig":
        self.options["WorkingDir"] = path
        return self


_OPERATIONS: Dict[Op, Callable[..., ContainerConfig]] = {
    Op.ADD_HOST: ContainerConfig.add_host,
    Op.ATTACH: ContainerConfig.attach,
    Op.CAP_ADD: ContainerConfig.cap_add,
    Op.CAP_DROP: ContainerConfig.cap_drop,
    Op.CIDFILE: ContainerConfig.cidfile,
    Op.CMD: ContainerConfig.cmd,
    Op.CPU_SHARES: ContainerConfig.cpu_shares,
    Op.CPUSET: ContainerConfig.cpuset,
    Op.DETACH: ContainerConfig.detach,
    Op.DEVICE: ContainerConfig.device,
    Op.DNS: ContainerConfig.dns,
    Op.DNS_SEARCH: ContainerConfig.dns_search,
    Op.ENV: ContainerConfig.env,
    Op.ENV_FILE: ContainerConfig.env_file,
    Op.EXPOSE: ContainerConfig.expose,
    Op.HOSTNAME: ContainerConfig.hostname,
    Op.IMAGE: ContainerConfig.image,
    Op.INTERACTIVE: ContainerConfig.interactive,
    Op.LINK: ContainerConfig.link,
    Op.LXC_CONF: ContainerConfig.lxc_conf,
    Op.MEMORY: ContainerConfig.memory,
    Op.NAME: ContainerConfig.name,
    Op.NET: ContainerConfig.net,
    Op.PRIVILEGED: ContainerConfig.privileged,
    Op.PUBLISH: ContainerConfig.publish,
    Op.PUBLISH_ALL: ContainerConfig.publish_all,
    Op.RESTART: ContainerConfig.restart,
    Op.SECURITY_OPT: ContainerConfig.security_opt,
    Op.TTY: ContainerConfig.tty,
    Op.USER: ContainerConfig.user,
    Op.VOLUME: ContainerConfig.volume,
    Op.VOLUMES_FROM: ContainerConfig.volumes_from,
    Op.WORKDIR: ContainerConfig.workdir,
}


def _lookup_flag(flag: str, token: str) -> Op:
    try:
        return FLAG_ALIASES[flag]
    except KeyError:
        raise ArgumentError(f"Unknown option: {token}") from None


def _flag_value(tokens: List[str], index: int) -> str:
    if index + 1 >= len(tokens):
        raise ArgumentError(f"Option {tokens[index]} needs a value")
    return tokens[index + 1]

