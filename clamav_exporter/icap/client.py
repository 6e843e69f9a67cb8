"""Minimal ICAP client.

Only a single RESPMOD exchange is supported: a payload is wrapped into
a synthetic HTTP response, sent to an ICAP service (e.g. squidclamav or
c-icap's virus_scan) and the verdict is read back from the headers.

"""
import logging
import re
import socket
import time

from ..transport import Endpoint, dial, recv_all, READ_TIMEOUT
from .types import IcapPartialWriteError, IcapResponse

DEFAULT_SERVICE = "squidclamav?allow204=on&force=on&sizelimit=off&mode=simple"

USER_AGENT = "clamav-exporter"


class IcapResponseParser:
    """Extracts server version, ICAP code and threat from a reply.

    The patterns are not anchored: they match anywhere in the reply.
    """
    def __init__(self):
        self.server_version_pattern = re.compile(r"Server: C-ICAP/(.+?)\r\n")
        self.code_pattern = re.compile(r"ICAP/1\.0 (\d+)")
        self.threat_pattern = re.compile(r"X-Infection-Found: .*Threat=(.*);")

    def parse(self, raw_resp: str) -> IcapResponse:
        resp = IcapResponse(raw_data=raw_resp)

        m = self.server_version_pattern.search(raw_resp)
        if m:
            resp.server_version = m.group(1)

        m = self.code_pattern.search(raw_resp)
        if m:
            resp.code = int(m.group(1))

        m = self.threat_pattern.search(raw_resp)
        if m:
            resp.threat = m.group(1)

        return resp


class IcapClient:
    """Client for an ICAP service.
    """
    def __init__(self,
                 host: str = "localhost",
                 port: int = 1344,
                 service: str = DEFAULT_SERVICE,
                 timeout: float = READ_TIMEOUT,  # seconds
                 buffer_size: int = 1024):
        """Create ICAP client instance.

        :param host: ICAP server host
        :param port: ICAP server port
        :param service: Service path and query, without leading slash
        :param timeout: Read timeout of each connection
        :param buffer_size: Size of the buffer to read from the server
        """
        self.host = host
        self.port = int(port)
        self.service = service
        self.timeout = timeout
        self.buffer_size = buffer_size
        self.parser = IcapResponseParser()

    @property
    def host_port(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"

    def build_request(self, payload: bytes) -> bytes:
        """Build a RESPMOD request carrying payload as response body.

        :param payload: Body of the encapsulated HTTP response
        :return: Complete request
        """
        http_header = f"Content-Length: {len(payload)}\r\n\r\n"
        req = bytearray()
        req += (f"RESPMOD icap://{self.host_port}/{self.service} ICAP/1.0\r\n"
                f"Host: {self.host_port}\r\n"
                f"User-Agent: {USER_AGENT}\r\n"
                # see Allow: 204 in https://tools.ietf.org/html/rfc3507#section-4.6
                "Allow: 204\r\n"
                f"Encapsulated: res-hdr=0, res-body={len(http_header)}\r\n"
                "\r\n").encode()
        req += http_header.encode()
        req += f"{len(payload):x}\r\n".encode()
        req += payload
        req += b"\r\n"
        req += b"0; ieof\r\n\r\n"
        return bytes(req)

    def respmod(self, payload: bytes) -> IcapResponse:
        """Send payload through a RESPMOD exchange.

        The write side is shut down once the request is sent, and the
        reply is read until the server closes the connection.

        :param payload: Data to scan
        :return: Parsed reply, with the elapsed time of the exchange
        """
        req = self.build_request(payload)
        endpoint = Endpoint("tcp", self.host_port)

        start = time.perf_counter()
        sock = dial(endpoint, self.timeout)
        try:
            logging.debug("Sending icap request to %s: %s", endpoint, req)
            sent = sock.send(req)
            if sent != len(req):
                raise IcapPartialWriteError(sent, len(req))
            sock.shutdown(socket.SHUT_WR)
            raw_resp = recv_all(sock, self.buffer_size)
        finally:
            sock.close()

        raw_resp = raw_resp.decode(errors="replace")
        logging.debug("Received icap response: %s", raw_resp)
        resp = self.parser.parse(raw_resp)
        resp.elapsed = time.perf_counter() - start
        return resp
