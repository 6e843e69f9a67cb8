"""Python bindings for clamd daemon on Unix or TCP socket.

For details about commands, see man clamd(8).

Usage:
.. code-block:: python

    clamd = Clamd("unix:///var/run/clamd.sock")
    version = clamd.version()
    results = clamd.scan_bytes(EICAR)

A new connection is opened and closed for each command.  Streams bigger
than a single chunk go through a session:
.. code-block:: python

    with clamd.open_stream() as stream:
        stream.write(first_chunk)
        stream.write(second_chunk)
        results = stream.finish()

"""

from .types import ClamdScanStatus, ClamdResult, ClamdException  # noqa
from .types import ClamdNoResponseError, ClamdUnexpectedResponseError  # noqa
from .types import ClamdChunkSizeError, ClamdPartialWriteError  # noqa
from .types import ClamdStats, VersionInfo  # noqa
from .parser import ClamdResponseParser  # noqa
from .client import Clamd, ClamdInStream, EICAR, MAX_CHUNK_SIZE  # noqa
