"""
BIRD control socket bridge

Speaks the line-oriented BIRD CLI protocol over the router's control socket.
Every reply line carries a four digit status code:

    1007-first line of a block      more lines follow
     continuation of that block     leading space, same code
    0000 last line                  code starting with 0, 8 or 9 ends the reply

Replies are not tagged with the command that produced them, so a session can
carry exactly one command at a time and must be read to its terminator. On
any framing anomaly the session is discarded and rebuilt on next use.

A ControlLink is not thread-safe on its own; ExecutionGate owns each link and
serializes access to it.
"""

import logging
import re
import socket
from typing import Optional, Tuple

from bird_lg.utils.error_handling import LinkError, LinkErrorKind
from bird_lg.utils.timeout_config import Deadline

logger = logging.getLogger(__name__)

_STATUS_LINE = re.compile(r"^(\d{4})([ -])(.*)$")


class ControlLink:
    """One logical session to a BIRD control socket"""

    GREETING_CODE = "0001"
    RESTRICT_CONFIRMATION = "Access restricted"
    ALLOWED_VERBS = ("show", "help")
    END_OF_REPLY_CODES = ("0", "8", "9")

    def __init__(self,
                 socket_path: str,
                 name: str = "bird",
                 restrict_cmds: bool = True,
                 restrict_session: bool = True,
                 timeout: float = 30.0,
                 max_line_size: int = 65536):
        """
        Args:
            socket_path: Unix socket path, or host:port for a TCP control socket
            name: Backend name used in logs and errors
            restrict_cmds: Reject commands outside the read-only verb list locally
            restrict_session: Send `restrict` after connecting and verify it
            timeout: Default budget for one exchange, in seconds
            max_line_size: Longest reply line accepted before declaring desync
        """
        self.socket_path = socket_path
        self.name = name
        self.restrict_cmds = restrict_cmds
        self.restrict_session = restrict_session
        self.timeout = timeout
        self.max_line_size = max_line_size

        self._sock: Optional[socket.socket] = None
        self._reader = None
        self.connects = 0

    @property
    def connected(self) -> bool:
        return self._sock is not None

    def check_command(self, command: str) -> str:
        """Validate a command without touching the socket; returns it stripped."""
        command = command.strip()
        if not command:
            raise LinkError(LinkErrorKind.FORBIDDEN, "Empty command")
        if "\n" in command or "\r" in command:
            raise LinkError(LinkErrorKind.FORBIDDEN, "Command must be a single line")
        if self.restrict_cmds:
            verb = command.split()[0].lower()
            if verb not in self.ALLOWED_VERBS:
                raise LinkError(
                    LinkErrorKind.FORBIDDEN,
                    f"Command '{verb}' is not allowed",
                )
        return command

    def send(self, command: str, timeout: Optional[float] = None,
             deadline: Optional[Deadline] = None) -> str:
        """
        Execute one command and return the reply text with status codes removed.

        Raises:
            LinkError: FORBIDDEN before any I/O, otherwise CLOSED, TIMEOUT or
                PROTOCOL_DESYNC after tearing the session down.
        """
        command = self.check_command(command)
        if deadline is None:
            deadline = Deadline(timeout if timeout is not None else self.timeout)

        reused = self.connected
        if not reused:
            self._connect(deadline)

        try:
            return self._exchange(command, deadline)
        except LinkError as e:
            self.close()
            # A reused session that died before producing a single reply byte
            # never executed the command; reopen once and resend.
            if reused and e.kind == LinkErrorKind.CLOSED and e.before_reply:
                logger.info(f"[{self.name}] stale control session, reconnecting")
                self._connect(deadline)
                try:
                    return self._exchange(command, deadline)
                except LinkError:
                    self.close()
                    raise
            raise

    def close(self):
        """Tear the session down; the next send reconnects."""
        if self._reader is not None:
            try:
                self._reader.close()
            except OSError:
                pass
            self._reader = None
        if self._sock is not None:
            try:
                self._sock.close()
            except OSError:
                pass
            self._sock = None
            logger.debug(f"[{self.name}] control session closed")

    def _open_socket(self, timeout: Optional[float]) -> socket.socket:
        address, family = self._address()
        sock = socket.socket(family, socket.SOCK_STREAM)
        sock.settimeout(timeout)
        try:
            sock.connect(address)
        except BaseException:
            sock.close()
            raise
        return sock

    def _address(self) -> Tuple[object, int]:
        path = self.socket_path
        if not path.startswith("/") and ":" in path:
            host, _, port = path.rpartition(":")
            return (host.strip("[]"), int(port)), (
                socket.AF_INET6 if ":" in host else socket.AF_INET
            )
        return path, socket.AF_UNIX

    def _connect(self, deadline: Deadline):
        """Open the socket, consume the greeting and restrict the session."""
        try:
            self._sock = self._open_socket(deadline.remaining())
        except socket.timeout:
            raise LinkError(LinkErrorKind.TIMEOUT,
                            f"Timed out connecting to {self.name} control socket")
        except OSError as e:
            raise LinkError(LinkErrorKind.CLOSED,
                            f"Failed to connect to {self.name} control socket",
                            technical_details=str(e))

        self._reader = self._sock.makefile("rb")
        self.connects += 1

        try:
            code, _, text = self._read_status_line(deadline)
            if code != self.GREETING_CODE:
                raise LinkError(LinkErrorKind.PROTOCOL_DESYNC,
                                f"Unexpected greeting from {self.name}: {code} {text}")
            logger.debug(f"[{self.name}] connected: {text}")

            if self.restrict_session:
                reply = self._exchange("restrict", deadline)
                if self.RESTRICT_CONFIRMATION not in reply:
                    raise LinkError(LinkErrorKind.PROTOCOL_DESYNC,
                                    "Could not verify that bird access was restricted")
        except LinkError:
            self.close()
            raise

    def _exchange(self, command: str, deadline: Deadline) -> str:
        self._write_line(command, deadline)
        return self._read_reply(deadline)

    def _write_line(self, command: str, deadline: Deadline):
        try:
            self._sock.settimeout(self._remaining(deadline))
            self._sock.sendall(f"{command}\n".encode("utf-8"))
        except socket.timeout:
            raise LinkError(LinkErrorKind.TIMEOUT, f"Timed out writing to {self.name}")
        except OSError as e:
            raise LinkError(LinkErrorKind.CLOSED, f"Control session to {self.name} lost",
                            technical_details=str(e), before_reply=True)

    def _read_reply(self, deadline: Deadline) -> str:
        output = []
        first = True
        while True:
            try:
                raw = self._readline(deadline)
            except LinkError as e:
                if first and e.kind == LinkErrorKind.CLOSED:
                    e.before_reply = True
                raise
            first = False

            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            match = _STATUS_LINE.match(line)
            if match:
                code, _, text = match.groups()
                if text:
                    output.append(text + "\n")
                if code[0] in self.END_OF_REPLY_CODES:
                    if code[0] != "0":
                        logger.debug(f"[{self.name}] command ended with status {code}")
                    return "".join(output)
            elif line.startswith(" "):
                output.append(line[1:] + "\n")
            elif line == "":
                continue
            else:
                raise LinkError(LinkErrorKind.PROTOCOL_DESYNC,
                                f"Malformed reply line from {self.name}",
                                technical_details=line[:120])

    def _read_status_line(self, deadline: Deadline) -> Tuple[str, str, str]:
        line = self._readline(deadline).decode("utf-8", errors="replace").rstrip("\r\n")
        match = _STATUS_LINE.match(line)
        if not match:
            raise LinkError(LinkErrorKind.PROTOCOL_DESYNC,
                            f"Malformed status line from {self.name}",
                            technical_details=line[:120])
        return match.groups()

    def _readline(self, deadline: Deadline) -> bytes:
        try:
            self._sock.settimeout(self._remaining(deadline))
            raw = self._reader.readline(self.max_line_size + 1)
        except socket.timeout:
            raise LinkError(LinkErrorKind.TIMEOUT,
                            f"Timed out waiting for reply from {self.name}")
        except OSError as e:
            raise LinkError(LinkErrorKind.CLOSED, f"Control session to {self.name} lost",
                            technical_details=str(e))

        if not raw:
            raise LinkError(LinkErrorKind.CLOSED,
                            f"{self.name} closed the control session")
        if not raw.endswith(b"\n"):
            if len(raw) > self.max_line_size:
                raise LinkError(LinkErrorKind.PROTOCOL_DESYNC,
                                f"Reply line from {self.name} exceeds {self.max_line_size} bytes")
            raise LinkError(LinkErrorKind.CLOSED,
                            f"{self.name} closed the control session mid-line")
        return raw

    @staticmethod
    def _remaining(deadline: Deadline) -> Optional[float]:
        remaining = deadline.remaining()
        if remaining is not None and remaining <= 0:
            raise LinkError(LinkErrorKind.TIMEOUT, "Deadline expired")
        return remaining
