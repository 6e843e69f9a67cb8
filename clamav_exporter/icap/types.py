"""Types for ICAP communication.

"""
from dataclasses import dataclass


class IcapException(Exception):
    """Raised when error occurred communicating with the ICAP server.
    """


class IcapPartialWriteError(IcapException):
    """Raised when the request was only partly written.
    """
    def __init__(self, written: int, expected: int):
        super().__init__(f"partial write of icap request: {written} of "
                         f"{expected} bytes")


@dataclass
class IcapResponse():
    """What we make of an ICAP server reply.
    """
    raw_data: str
    server_version: str = ""
    code: int | None = None
    threat: str | None = None
    # seconds from connect until the reply was parsed
    elapsed: float = float("nan")

    @property
    def detected(self) -> bool:
        return self.threat is not None

    def __str__(self):
        return self.raw_data
