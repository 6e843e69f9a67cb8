"""Prometheus collectors probing clamd and ICAP on every scrape.

A collector never fails a scrape: whatever goes wrong while probing is
logged and shows up as ``up == 0`` and NaN gauges.

"""
import abc
import logging
import math
import time
import typing as t

from prometheus_client.core import GaugeMetricFamily
from prometheus_client.registry import Collector

from .clamd import Clamd, ClamdScanStatus, ClamdNoResponseError, EICAR
from .icap import IcapClient, DEFAULT_SERVICE
from .transport import READ_TIMEOUT

# harmless payload that no scanner should flag
HELLO = b"I am a totally legit non-threatening Hello message from The Beyond!"

NAN = math.nan

# (name, help, label names)
GaugeSpec = tuple[str, str, list[str]]
Readings = dict[str, t.Any]


def as_gauge(value: t.Any) -> float:
    """Unknown readings are exported as NaN.
    """
    if value is None:
        return NAN
    return float(value)


class ProbeCollector(Collector):
    """Exposes a fixed set of gauges filled by probe().
    """
    gauges: list[GaugeSpec] = []

    def describe(self) -> t.Iterable[GaugeMetricFamily]:
        for name, documentation, labels in self.gauges:
            yield GaugeMetricFamily(name, documentation, labels=labels)

    def collect(self) -> t.Iterable[GaugeMetricFamily]:
        readings, version = self.probe()
        for name, documentation, labels in self.gauges:
            family = GaugeMetricFamily(name, documentation, labels=labels)
            label_values = [version] if labels else []
            family.add_metric(label_values, as_gauge(readings.get(name)))
            yield family

    @abc.abstractmethod
    def probe(self) -> tuple[Readings, str]:
        """Run the checks.

        :return: Reading per gauge name (None when unknown) and the
            value of the version label
        """


class ClamdCollector(ProbeCollector):
    """Probes clamd over its command protocol.

    Version first: if clamd cannot tell its version the daemon is
    reported down and nothing else is tried.
    """
    gauges = [
        ("clamav_clamd_up",
         "connection to clamd is successful", ["version"]),
        ("clamav_clamd_db_version",
         "version of currently used virus definition DB", []),
        ("clamav_clamd_db_time",
         "timestamp of currently used virus definition DB", []),
        ("clamav_clamd_stats_queue_length",
         "number of items in clamd queue", []),
        ("clamav_clamd_stats_threads_live",
         "number of busy clamd threads", []),
        ("clamav_clamd_stats_threads_idle",
         "number of idle clamd threads", []),
        ("clamav_clamd_stats_threads_max",
         "maximum number of clamd threads", []),
        ("clamav_clamd_stats_mem_heap_bytes",
         "clamd heap memory", []),
        ("clamav_clamd_stats_mem_mmap_bytes",
         "clamd mmap memory", []),
        ("clamav_clamd_stats_mem_used_bytes",
         "clamd used memory", []),
        ("clamav_clamd_stats_mem_free_bytes",
         "clamd free memory", []),
        ("clamav_clamd_stats_mem_releasable_bytes",
         "clamd releasable memory", []),
        ("clamav_clamd_stats_mem_pools",
         "number of clamd memory pools", []),
        ("clamav_clamd_stats_mem_pools_used_bytes",
         "memory used by clamd memory pools", []),
        ("clamav_clamd_stats_mem_pools_total_bytes",
         "total memory of clamd memory pools", []),
        ("clamav_clamd_eicar_detected",
         "successfully detected eicar test stream", []),
        ("clamav_clamd_eicar_detection_time_seconds",
         "eicar test stream detection time", []),
    ]

    def __init__(self, url: str, timeout: float = READ_TIMEOUT):
        self.clamd = Clamd(url, timeout=timeout)

    def probe(self) -> tuple[Readings, str]:
        readings: Readings = {"clamav_clamd_up": 0}

        try:
            raw_version = self.clamd.version()
        except Exception as e:
            logging.warning("Unable to get clamd version from %s: %s",
                            self.clamd.endpoint, e)
            return readings, ""
        info = self.clamd.parser.parse_version(raw_version)
        if info is None:
            logging.warning("Got invalid clamd version string: %s",
                            raw_version)
            return readings, ""

        readings["clamav_clamd_up"] = 1
        readings["clamav_clamd_db_version"] = info.db_version
        readings["clamav_clamd_db_time"] = info.db_time.timestamp()

        try:
            stats = self.clamd.stats()
        except Exception as e:
            logging.warning("Unable to get clamd stats: %s", e)
        else:
            readings.update({
                "clamav_clamd_stats_queue_length": stats.queue_length,
                "clamav_clamd_stats_threads_live": stats.threads.live,
                "clamav_clamd_stats_threads_idle": stats.threads.idle,
                "clamav_clamd_stats_threads_max": stats.threads.max,
                "clamav_clamd_stats_mem_heap_bytes": stats.memory.heap,
                "clamav_clamd_stats_mem_mmap_bytes": stats.memory.mmap,
                "clamav_clamd_stats_mem_used_bytes": stats.memory.used,
                "clamav_clamd_stats_mem_free_bytes": stats.memory.free,
                "clamav_clamd_stats_mem_releasable_bytes":
                    stats.memory.releasable,
                "clamav_clamd_stats_mem_pools": stats.memory.pools,
                "clamav_clamd_stats_mem_pools_used_bytes":
                    stats.memory.pools_used,
                "clamav_clamd_stats_mem_pools_total_bytes":
                    stats.memory.pools_total,
            })

        try:
            detected, elapsed = self._scan_eicar()
        except Exception as e:
            logging.warning("Unable to scan eicar test stream: %s", e)
        else:
            readings["clamav_clamd_eicar_detected"] = detected
            readings["clamav_clamd_eicar_detection_time_seconds"] = elapsed

        return readings, info.clamav_version

    def _scan_eicar(self) -> tuple[int, float]:
        start = time.perf_counter()
        results = self.clamd.scan_bytes(EICAR)
        elapsed = time.perf_counter() - start
        if not results:
            raise ClamdNoResponseError()
        logging.debug("Eicar scan result: %s", results[0])
        detected = int(results[0].status == ClamdScanStatus.FOUND)
        return detected, elapsed


class IcapCollector(ProbeCollector):
    """Probes an ICAP service with the eicar and hello payloads.

    The eicar exchange decides whether the service is up; the server
    header of its reply gives the version label.
    """
    gauges = [
        ("clamav_icap_up",
         "connection to icap is successful", ["version"]),
        ("clamav_icap_eicar_icap_code",
         "ICAP result code for eicar test stream", []),
        ("clamav_icap_eicar_detected",
         "successfully detected eicar test stream", []),
        ("clamav_icap_eicar_detection_time_seconds",
         "eicar test stream detection time", []),
        ("clamav_icap_hello_ok",
         "correctly identified hello as non-threatening", []),
        ("clamav_icap_hello_ok_time_seconds",
         "unthreatening hello test stream detection time", []),
    ]

    def __init__(self,
                 host: str = "localhost",
                 port: int = 1344,
                 service: str = DEFAULT_SERVICE,
                 timeout: float = READ_TIMEOUT):
        self.icap = IcapClient(host, port, service, timeout=timeout)

    def probe(self) -> tuple[Readings, str]:
        readings: Readings = {"clamav_icap_up": 0}

        try:
            eicar = self.icap.respmod(EICAR)
        except Exception as e:
            logging.warning("Unable to send eicar to icap %s: %s",
                            self.icap.host_port, e)
            return readings, ""
        logging.debug("Icap eicar response code %s, threat %s",
                      eicar.code, eicar.threat)

        readings.update({
            "clamav_icap_up": 1,
            "clamav_icap_eicar_icap_code": eicar.code,
            "clamav_icap_eicar_detected": int(eicar.detected),
            "clamav_icap_eicar_detection_time_seconds": eicar.elapsed,
        })

        try:
            hello = self.icap.respmod(HELLO)
        except Exception as e:
            logging.warning("Unable to send hello to icap %s: %s",
                            self.icap.host_port, e)
        else:
            readings["clamav_icap_hello_ok"] = int(not hello.detected)
            readings["clamav_icap_hello_ok_time_seconds"] = hello.elapsed

        return readings, eicar.server_version
