"""Socket table sources: procfs, psutil and lsof."""

import ipaddress
import logging
import socket
import subprocess
from pathlib import Path

import psutil

from pywitr.config import DEFAULT_TIMEOUT
from pywitr.errors import SourceUnavailable
from pywitr.models import Connection, ListeningSocket
from pywitr.sources import SocketTableSource

logger = logging.getLogger(__name__)

# Kernel TCP state codes as they appear in /proc/net/tcp
TCP_STATES = {
    0x01: "ESTABLISHED",
    0x02: "SYN_SENT",
    0x03: "SYN_RECV",
    0x04: "FIN_WAIT1",
    0x05: "FIN_WAIT2",
    0x06: "TIME_WAIT",
    0x07: "CLOSE",
    0x08: "CLOSE_WAIT",
    0x09: "LAST_ACK",
    0x0A: "LISTEN",
    0x0B: "CLOSING",
}
LISTEN_HEX = "0A"

SOCKET_LINK_PREFIX = "socket:["


def decode_proc_address(raw: str, ipv6: bool) -> tuple[str, int]:
    """
    Decode an 'ADDR:PORT' hex pair from /proc/net/tcp{,6}.

    IPv4 addresses are one little-endian word; IPv6 addresses are four
    little-endian 32-bit words.
    """
    addr_hex, _, port_hex = raw.partition(":")
    port = int(port_hex, 16) if port_hex else 0
    try:
        packed = bytes.fromhex(addr_hex)
    except ValueError:
        return "", port
    if ipv6:
        if len(packed) != 16:
            return "::", port
        words = b"".join(packed[i : i + 4][::-1] for i in range(0, 16, 4))
        return str(ipaddress.IPv6Address(words)), port
    if len(packed) != 4:
        return "", port
    return str(ipaddress.IPv4Address(packed[::-1])), port


class ProcfsSocketTable(SocketTableSource):
    """Linux socket table read straight from /proc, cross-referenced by inode."""

    name = "procfs"

    TCP_FILES = (("net/tcp", False), ("net/tcp6", True))
    UDP_FILES = (("net/udp", False), ("net/udp6", True))

    def __init__(self, proc_root: Path = Path("/proc")) -> None:
        self._root = proc_root

    def _rows(self, relative: str) -> list[list[str]]:
        """Split a /proc/net table into field lists, skipping the header."""
        path = self._root / relative
        try:
            lines = path.read_text().splitlines()
        except FileNotFoundError:
            # tcp6 is absent on kernels built without IPv6
            return []
        except OSError as exc:
            raise SourceUnavailable(self.name, f"cannot read {path}: {exc}") from exc
        return [fields for fields in (line.split() for line in lines[1:]) if len(fields) >= 10]

    def _require_tables(self) -> None:
        if not (self._root / "net" / "tcp").exists():
            raise SourceUnavailable(self.name, f"{self._root / 'net' / 'tcp'} not found")

    def list_listening_sockets(self) -> list[ListeningSocket]:
        self._require_tables()
        sockets: list[ListeningSocket] = []
        for relative, ipv6 in self.TCP_FILES:
            for fields in self._rows(relative):
                if fields[3] != LISTEN_HEX:
                    continue
                address, port = decode_proc_address(fields[1], ipv6)
                sockets.append(ListeningSocket(address=address, port=port, handle=fields[9]))
        return sockets

    def list_open_handles(self, pid: int) -> list[str]:
        fd_dir = self._root / str(pid) / "fd"
        handles: list[str] = []
        try:
            entries = list(fd_dir.iterdir())
        except OSError:
            # Exited, or not ours to read without privileges
            logger.debug("cannot list %s", fd_dir)
            return handles
        for entry in entries:
            try:
                link = str(entry.readlink())
            except OSError:
                continue
            if link.startswith(SOCKET_LINK_PREFIX):
                handles.append(link[len(SOCKET_LINK_PREFIX) : -1])
        return handles

    def _inode_owners(self) -> dict[str, int]:
        owners: dict[str, int] = {}
        for entry in self._root.iterdir():
            if not entry.name.isdigit():
                continue
            pid = int(entry.name)
            for handle in self.list_open_handles(pid):
                owners.setdefault(handle, pid)
        return owners

    def list_connections(self) -> list[Connection]:
        self._require_tables()
        owners = self._inode_owners()
        connections: list[Connection] = []
        for protocol, tables in (("TCP", self.TCP_FILES), ("UDP", self.UDP_FILES)):
            for relative, ipv6 in tables:
                for fields in self._rows(relative):
                    local, local_port = decode_proc_address(fields[1], ipv6)
                    remote, remote_port = decode_proc_address(fields[2], ipv6)
                    state = ""
                    if protocol == "TCP":
                        state = TCP_STATES.get(int(fields[3], 16), "UNKNOWN")
                    connections.append(
                        Connection(
                            protocol=protocol,
                            local_address=local,
                            local_port=local_port,
                            remote_address=remote,
                            remote_port=remote_port,
                            state=state,
                            pid=owners.get(fields[9]),
                        )
                    )
        return connections


def _psutil_handle(ip: str, port: int) -> str:
    return f"{ip}:{port}"


class PsutilSocketTable(SocketTableSource):
    """Socket table from psutil.net_connections(); owners are reported directly."""

    name = "psutil"

    def _connections(self) -> list:
        try:
            return psutil.net_connections(kind="inet")
        except psutil.AccessDenied as exc:
            raise SourceUnavailable(self.name, "permission denied") from exc

    def list_listening_sockets(self) -> list[ListeningSocket]:
        sockets: list[ListeningSocket] = []
        for conn in self._connections():
            if conn.status != psutil.CONN_LISTEN or not conn.laddr:
                continue
            sockets.append(
                ListeningSocket(
                    address=conn.laddr.ip,
                    port=conn.laddr.port,
                    handle=_psutil_handle(conn.laddr.ip, conn.laddr.port),
                    pid=conn.pid,
                )
            )
        return sockets

    def list_open_handles(self, pid: int) -> list[str]:
        try:
            conns = psutil.Process(pid).net_connections(kind="inet")
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            logger.debug("cannot read connections of pid %s", pid)
            return []
        return [
            _psutil_handle(c.laddr.ip, c.laddr.port)
            for c in conns
            if c.status == psutil.CONN_LISTEN and c.laddr
        ]

    def list_connections(self) -> list[Connection]:
        connections: list[Connection] = []
        for conn in self._connections():
            protocol = "UDP" if conn.type == socket.SOCK_DGRAM else "TCP"
            state = "" if conn.status == psutil.CONN_NONE else conn.status
            connections.append(
                Connection(
                    protocol=protocol,
                    local_address=conn.laddr.ip if conn.laddr else "",
                    local_port=conn.laddr.port if conn.laddr else 0,
                    remote_address=conn.raddr.ip if conn.raddr else "",
                    remote_port=conn.raddr.port if conn.raddr else 0,
                    state=state,
                    pid=conn.pid,
                )
            )
        return connections


def split_lsof_name(name: str) -> tuple[str, int]:
    """Split an lsof endpoint such as '*:80', '127.0.0.1:80' or '[::1]:80'."""
    host, _, port = name.rpartition(":")
    host = host.strip("[]")
    try:
        return host, int(port)
    except ValueError:
        return host, 0


class LsofSocketTable(SocketTableSource):
    """
    Socket table parsed from `lsof -F` field output.

    Field lines start with a one-letter tag: p (pid), P (protocol),
    n (name, 'local' or 'local->remote') and T (TCP info, e.g. 'TST=LISTEN').
    """

    name = "lsof"

    def __init__(self, timeout: float = DEFAULT_TIMEOUT) -> None:
        self._timeout = timeout

    def _run(self, args: list[str]) -> str:
        try:
            result = subprocess.run(
                ["lsof", "-n", "-P", *args],
                capture_output=True,
                text=True,
                timeout=self._timeout,
            )
        except FileNotFoundError as exc:
            raise SourceUnavailable(self.name, "lsof not installed") from exc
        except subprocess.TimeoutExpired as exc:
            raise SourceUnavailable(self.name, f"timed out after {self._timeout}s") from exc
        # lsof exits 1 when nothing matched; only stderr output means a real failure
        if result.returncode != 0 and result.stderr.strip():
            raise SourceUnavailable(self.name, result.stderr.strip().splitlines()[0])
        return result.stdout

    @staticmethod
    def _parse(output: str) -> list[dict]:
        """Group field lines into one dict per file, carrying the owning pid."""
        entries: list[dict] = []
        pid = None
        current: dict | None = None
        for line in output.splitlines():
            if not line:
                continue
            tag, value = line[0], line[1:]
            if tag == "p":
                pid = int(value)
                current = None
            elif tag == "f":
                current = {"pid": pid, "protocol": "", "name": "", "state": ""}
                entries.append(current)
            elif current is not None:
                if tag == "P":
                    current["protocol"] = value
                elif tag == "n":
                    current["name"] = value
                elif tag == "T" and value.startswith("ST="):
                    current["state"] = value[3:]
        return entries

    def list_listening_sockets(self) -> list[ListeningSocket]:
        output = self._run(["-iTCP", "-sTCP:LISTEN", "-F", "pfn"])
        sockets: list[ListeningSocket] = []
        for entry in self._parse(output):
            address, port = split_lsof_name(entry["name"])
            sockets.append(
                ListeningSocket(address=address, port=port, handle=entry["name"], pid=entry["pid"])
            )
        return sockets

    def list_open_handles(self, pid: int) -> list[str]:
        try:
            output = self._run(["-a", "-p", str(pid), "-iTCP", "-sTCP:LISTEN", "-F", "pfn"])
        except SourceUnavailable:
            return []
        return [entry["name"] for entry in self._parse(output)]

    def list_connections(self) -> list[Connection]:
        connections: list[Connection] = []
        for entry in self._parse(self._run(["-i", "-F", "pfPnT"])):
            local, _, remote = entry["name"].partition("->")
            local_address, local_port = split_lsof_name(local)
            remote_address, remote_port = split_lsof_name(remote) if remote else ("", 0)
            connections.append(
                Connection(
                    protocol=entry["protocol"],
                    local_address=local_address,
                    local_port=local_port,
                    remote_address=remote_address,
                    remote_port=remote_port,
                    state=entry["state"],
                    pid=entry["pid"],
                )
            )
        return connections
