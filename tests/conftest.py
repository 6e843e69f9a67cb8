import os
import shutil
import socket
import socketserver
import struct
import tempfile
import threading

import pytest
from clamav_exporter import app


class FakeClamdHandler(socketserver.StreamRequestHandler):
    """Reads one clamd command (and its INSTREAM chunks), then replies.
    """
    def handle(self):
        server = self.server
        command = read_command(self.rfile)
        received = {"command": command, "chunks": []}
        name = command[1:-1].decode()
        if name == "INSTREAM":
            while True:
                size = struct.unpack("!L", self.rfile.read(4))[0]
                if size == 0:
                    break
                received["chunks"].append(self.rfile.read(size))
        server.received.append(received)

        reply = server.replies.get(name, b"")
        self.wfile.write(reply)


def read_command(rfile):
    """Read a command up to its newline or null terminator.
    """
    command = bytearray()
    c = rfile.read(1)
    while c:
        command += c
        if c in (b"\n", b"\x00"):
            break
        c = rfile.read(1)
    return bytes(command)


class FakeIcapHandler(socketserver.StreamRequestHandler):
    """Reads the request until the client shuts down writing, then replies.
    """
    def handle(self):
        server = self.server
        request = self.rfile.read()
        server.received.append(request)
        if b"EICAR" in request:
            self.wfile.write(server.replies.get("eicar", b""))
        else:
            self.wfile.write(server.replies.get("hello", b""))


class FakeTCPServer(socketserver.ThreadingTCPServer):
    daemon_threads = True
    allow_reuse_address = True


class FakeUnixServer(socketserver.ThreadingUnixStreamServer):
    daemon_threads = True


def serve(server, replies):
    server.replies = replies
    server.received = []
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    return server


@pytest.fixture()
def fake_clamd():
    """Fake clamd on a TCP port; fill .replies with command -> bytes.
    """
    server = serve(FakeTCPServer(("127.0.0.1", 0), FakeClamdHandler), {})
    host, port = server.server_address
    server.url = f"tcp://{host}:{port}"

    yield server

    server.shutdown()
    server.server_close()


@pytest.fixture()
def fake_clamd_unix():
    """Fake clamd on a Unix socket; fill .replies with command -> bytes.
    """
    # keep the path short, Unix socket paths are limited in length
    tmpdir = tempfile.mkdtemp(prefix="clamd")
    path = os.path.join(tmpdir, "clamd.sock")
    server = serve(FakeUnixServer(path, FakeClamdHandler), {})
    server.url = f"unix://{path}"

    yield server

    server.shutdown()
    server.server_close()
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture()
def fake_icap():
    """Fake ICAP server; .replies has "eicar" and "hello" keys.
    """
    server = serve(FakeTCPServer(("127.0.0.1", 0), FakeIcapHandler), {})

    yield server

    server.shutdown()
    server.server_close()


@pytest.fixture()
def unreachable_url():
    return "unix:///nonexistent/clamd.sock"


@pytest.fixture()
def closed_port():
    """A local TCP port nobody listens on.
    """
    with FakeTCPServer(("127.0.0.1", 0), FakeClamdHandler) as server:
        port = server.server_address[1]
    return port


@pytest.fixture()
def test_app():
    app.config.update({
        "TESTING": True,
        "CLAMD_ENABLE": False,
        "ICAP_ENABLE": False,
    })

    yield app


@pytest.fixture()
def client(test_app):
    return test_app.test_client()


class ShortWriteSocket:
    """Socket stand-in whose send always writes one byte less.
    """
    def __init__(self):
        self.sent = []
        self.closed = False

    def send(self, data):
        self.sent.append(data)
        return max(len(data) - 1, 0)

    def shutdown(self, how):
        pass

    def close(self):
        self.closed = True


@pytest.fixture()
def short_write_socket():
    return ShortWriteSocket()


@pytest.fixture()
def silent_listener():
    """TCP listener that accepts connections and never replies.
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(8)

    yield sock.getsockname()

    sock.close()
