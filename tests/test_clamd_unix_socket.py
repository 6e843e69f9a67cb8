import io
import os

import pytest
from clamav_exporter.clamd import Clamd, ClamdScanStatus, EICAR
from clamav_exporter.collectors import ClamdCollector

# require running clamd daemon

SOCKET_PATH = "/tmp/clamd.sock"
URL = "unix://" + SOCKET_PATH

pytestmark = pytest.mark.skipif(not os.path.exists(SOCKET_PATH),
                                reason="no clamd running at " + SOCKET_PATH)


def test_cmd_ping():
    Clamd(URL).ping()


def test_cmd_version():
    version = Clamd(URL).version()

    assert version.startswith("ClamAV ")
    assert Clamd(URL).parser.parse_version(version) is not None


def test_cmd_stats():
    stats = Clamd(URL).stats()

    assert stats.state
    assert stats.queue_length is not None
    assert stats.threads.max is not None


def test_cmd_instream():
    results = Clamd(URL).instream(io.BytesIO(b"just some text"))

    assert len(results) == 1
    assert results[0].path == "stream"
    assert results[0].status == ClamdScanStatus.OK


def test_cmd_instream_infected():
    results = Clamd(URL).scan_bytes(EICAR)

    assert len(results) == 1
    assert results[0].path == "stream"
    assert results[0].status == ClamdScanStatus.FOUND
    assert "EICAR" in results[0].description.upper()


def test_collector():
    values = {f.name: f.samples[0].value
              for f in ClamdCollector(URL).collect()}

    assert values["clamav_clamd_up"] == 1
    assert values["clamav_clamd_eicar_detected"] == 1
