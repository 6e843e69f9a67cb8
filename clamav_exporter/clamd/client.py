"""Client for clamd.

The daemon can be reached over TCP (``tcp://host:port``) or over a Unix
domain socket (``unix:///path``).  Once connection is established, the
behaviour is the same.

Every command opens its own connection and closes it once clamd has
replied; clamd sessions are not used.

"""
import logging
import struct
import socket
import typing as t
from contextlib import contextmanager

from ..transport import Endpoint, dial, recv_all, READ_TIMEOUT
from .parser import ClamdResponseParser
from .types import ClamdException, \
    ClamdChunkSizeError, \
    ClamdNoResponseError, \
    ClamdPartialWriteError, \
    ClamdResult, \
    ClamdStats, \
    ClamdUnexpectedResponseError

# biggest chunk we send in one INSTREAM packet
MAX_CHUNK_SIZE = 1024

# EICAR anti-malware test string, every antivirus flags it
EICAR = br"X5O!P%@AP[4\PZX54(P^)7CC)7}$EICAR-STANDARD-ANTIVIRUS-TEST-FILE!$H+H*"


class Clamd:
    """Client for clamd daemon.
    """
    def __init__(self,
                 url: str,
                 timeout: float = READ_TIMEOUT,  # seconds
                 cmd_terminator: bytes = b'\n',
                 buffer_size: int = 1024):
        """Create clamd client instance.

        :param url: Endpoint URL, tcp://host:port or unix:///path
        :param timeout: Read timeout of each connection
        :param cmd_terminator: Terminator of clamd commands
        :param buffer_size: Size of the buffer to read from clamd
        """
        self.endpoint = Endpoint.from_url(url)
        self.timeout = timeout
        self.cmd_terminator = cmd_terminator
        self.buffer_size = buffer_size
        self.parser = ClamdResponseParser()

        # cmd specifier is a prefix we put before the command.  Its
        # value is 'z' for null terminated commands or 'n' for newline
        # terminated commands.  Read more in man clamd(8)
        if cmd_terminator == b'\x00':
            self.cmd_specifier = b'z'
        elif cmd_terminator == b'\n':
            self.cmd_specifier = b'n'
        else:
            raise ClamdException("Unknown command terminator, "
                                 "\\x00 or \\n accepted."
                                 "Read man clamd(8) for details")

    def ping(self) -> None:
        """Execute clamd PING command.

        Check the server's state. It should reply with "PONG".
        """
        self.run_command_expect("PING", "PONG")

    def version(self) -> str:
        """Execute clamd VERSION command.

        Print program and database versions.

        :return: Raw version line
        """
        results = self.run_command("VERSION")
        if not results:
            raise ClamdNoResponseError()
        return results[0].raw

    def stats(self) -> ClamdStats:
        """Execute clamd STATS command.

        Replies with statistics about the scan queue, contents of scan
        queue, and memory usage.
        """
        results = self.run_command("STATS")
        # with null terminated commands the whole reply is a single
        # result, its lines still separated by newlines
        lines = [line.rstrip(" \t\r")
                 for r in results for line in r.raw.split("\n")]
        raw = self.parser.fold_stats(lines)
        logging.debug("Folded clamd stats: %s", raw)
        return self.parser.parse_stats(raw)

    def scan_bytes(self, payload: bytes) -> list[ClamdResult]:
        """Scan a payload with the clamd INSTREAM command.

        The payload is sent as a single chunk, so it must not be bigger
        than MAX_CHUNK_SIZE.  Nothing is sent if it is.

        :param payload: Data to scan
        :return: Results of the scanning
        """
        check_chunk_size(payload)
        with self.open_stream() as stream:
            stream.write(payload)
            return stream.finish()

    def instream(self, input_stream: t.IO[bytes]) -> list[ClamdResult]:
        """Scan a stream of data with the clamd INSTREAM command.

        The stream is read and sent to clamd in MAX_CHUNK_SIZE chunks,
        on the same socket on which the command was sent.

        :param input_stream: Input stream to analyze
        :return: Results of the scanning
        """
        with self.open_stream() as stream:
            buf = input_stream.read(MAX_CHUNK_SIZE)
            while buf:
                stream.write(buf)
                buf = input_stream.read(MAX_CHUNK_SIZE)
            return stream.finish()

    def open_stream(self) -> "ClamdInStream":
        """Start an INSTREAM session.
        """
        sock = dial(self.endpoint, self.timeout)
        try:
            self._send_command(sock, "INSTREAM")
        except Exception:
            sock.close()
            raise
        return ClamdInStream(self, sock)

    def run_command(self, command: str) -> list[ClamdResult]:
        """Send a command to clamd and parse every line of the reply.

        :param command: Command to execute, possible values in man clamd(8)
        :return: One result per reply line, possibly none
        """
        with self._connection() as sock:
            self._send_command(sock, command)
            return self._read_results(sock)

    def run_command_expect(self, command: str, expected: str) -> None:
        """Send a command and check clamd replied with the expected line.

        :param command: Command to execute
        :param expected: Line clamd must reply with
        """
        results = self.run_command(command)
        if not results:
            raise ClamdNoResponseError()
        if results[0].raw != expected:
            raise ClamdUnexpectedResponseError(results[0].raw)

    @contextmanager
    def _connection(self) -> t.Iterator[socket.socket]:
        sock = dial(self.endpoint, self.timeout)
        try:
            yield sock
        finally:
            sock.close()

    def _send_command(self, sock: socket.socket, command: str) -> None:
        """Send command to clamd.

        :param command: Command to execute, possible values in man clamd(8)
        """
        full_cmd = b''.join([
            self.cmd_specifier,
            command.encode(),
            self.cmd_terminator,
        ])
        logging.debug("Sending command: %s", full_cmd)
        send_exactly(sock, full_cmd)

    def _read_results(self, sock: socket.socket) -> list[ClamdResult]:
        """Read clamd reply until it closes the connection.

        :return: One parsed result per reply line
        """
        raw_resp = recv_all(sock, self.buffer_size).decode(errors="replace")
        logging.debug("Received clamd response: %s", raw_resp)

        # clamd respects the terminator that we chose; the trailing
        # fragment after the last terminator is not a line
        lines = raw_resp.split(self.cmd_terminator.decode())
        if lines and not lines[-1]:
            lines.pop()
        return [self.parser.parse_line(line.rstrip(" \t\r\n"))
                for line in lines]


class ClamdInStream:
    """An open INSTREAM session.

    Write chunks, then call finish() to collect the results.  The
    connection is closed by finish() or when leaving the ``with`` block.
    """
    def __init__(self, clamd: Clamd, sock: socket.socket):
        self._clamd = clamd
        self._sock = sock

    def __enter__(self):
        return self

    def __exit__(self, *args, **kwargs):
        self.close()
        return False

    def write(self, chunk: bytes) -> None:
        """Send one chunk, prefixed with its length as man clamd(8) says.
        """
        check_chunk_size(chunk)
        send_exactly(self._sock, struct.pack('!L', len(chunk)) + chunk)

    def finish(self) -> list[ClamdResult]:
        """Send the empty chunk that ends the stream and read the results.
        """
        try:
            send_exactly(self._sock, struct.pack('!L', 0))
            return self._clamd._read_results(self._sock)
        finally:
            self.close()

    def close(self) -> None:
        self._sock.close()


def check_chunk_size(chunk: bytes) -> None:
    if len(chunk) > MAX_CHUNK_SIZE:
        raise ClamdChunkSizeError(len(chunk), MAX_CHUNK_SIZE)


def send_exactly(sock: socket.socket, data: bytes) -> None:
    """Write data in a single send, failing if it was only partly written.
    """
    sent = sock.send(data)
    if sent != len(data):
        raise ClamdPartialWriteError(sent, len(data))
