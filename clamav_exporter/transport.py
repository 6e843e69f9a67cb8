"""Short-lived connections to a daemon endpoint.

An endpoint is written as a URL: ``tcp://host:port`` for a daemon on the
network, ``unix:///path/to/socket`` for a local one.  Anything else is
taken as a plain Unix socket path.

"""
import socket
from dataclasses import dataclass
from urllib.parse import urlsplit

# seconds
CONNECT_TIMEOUT = 2
READ_TIMEOUT = 30


@dataclass(frozen=True)
class Endpoint:
    """Where a daemon listens.
    """
    scheme: str
    address: str

    @classmethod
    def from_url(cls, url: str) -> "Endpoint":
        """Build an endpoint from its URL form.

        Unknown schemes fall back to using the whole string as a Unix
        socket path.
        """
        parts = urlsplit(url)
        if parts.scheme == "tcp":
            return cls("tcp", parts.netloc)
        if parts.scheme == "unix":
            return cls("unix", parts.path)
        return cls("unix", url)

    def __str__(self):
        if self.scheme == "tcp":
            return f"tcp://{self.address}"
        return f"unix://{self.address}"


def dial(endpoint: Endpoint, read_timeout: float = READ_TIMEOUT) -> socket.socket:
    """Open a stream connection to the endpoint.

    TCP connects are bounded by CONNECT_TIMEOUT; Unix sockets connect
    without a timeout.  Once connected, every read and write is bounded
    by read_timeout.  The caller owns the socket and must close it.

    :param endpoint: Endpoint to connect to
    :param read_timeout: Timeout of the connected socket
    :return: Connected socket
    """
    if endpoint.scheme == "tcp":
        parts = urlsplit("//" + endpoint.address)
        sock = socket.create_connection((parts.hostname, parts.port),
                                        timeout=CONNECT_TIMEOUT)
    else:
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.connect(endpoint.address)
        except OSError:
            sock.close()
            raise
    sock.settimeout(read_timeout)
    return sock


def recv_all(sock: socket.socket, buffer_size: int) -> bytes:
    """Read from the socket until the peer closes its side.
    """
    recd_data = bytearray()
    recd_buf = sock.recv(buffer_size)
    while recd_buf:
        recd_data.extend(recd_buf)
        recd_buf = sock.recv(buffer_size)
    return bytes(recd_data)
