"""Client for ICAP services fronting ClamAV (squidclamav, c-icap).

Usage:
.. code-block:: python

    icap = IcapClient("localhost", 1344)
    resp = icap.respmod(b"some payload")
    if resp.detected:
        print(resp.threat)

"""

from .types import IcapException, IcapPartialWriteError, IcapResponse  # noqa
from .client import IcapClient, IcapResponseParser, DEFAULT_SERVICE  # noqa
