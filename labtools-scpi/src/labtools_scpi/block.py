"""IEEE 488.2 definite-length block transfers.

A binary response is framed as ``#<L1><N><payload>``: a literal ``#``, one
ASCII digit ``L1`` giving the number of length digits, ``L1`` ASCII digits
giving the payload length ``N``, then exactly ``N`` raw bytes with no
terminator.

Example::

    with binary_mode(transport):
        data = read_definite_block(transport)
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

from labtools_core.errors import ProtocolError

if TYPE_CHECKING:
    from labtools_scpi.transport import ScpiTransport

logger = logging.getLogger(__name__)

BLOCK_MARKER = b"#"


def parse_block_header(transport: ScpiTransport) -> int:
    """Read a block header from *transport* and return the payload length.

    Raises:
        ProtocolError: If the marker is not ``#``, the digit count is not a
            digit in 1-9, or the length field is not all digits.
    """
    marker = transport.read_bytes(1)
    if marker != BLOCK_MARKER:
        raise ProtocolError(f"No # at start of binary data (got {marker!r})")

    digit_count = transport.read_bytes(1)
    if len(digit_count) != 1 or not digit_count.isdigit() or digit_count == b"0":
        raise ProtocolError(f"Invalid block length digit count: {digit_count!r}")

    width = int(digit_count)
    length_field = transport.read_bytes(width)
    if len(length_field) != width or not length_field.isdigit():
        raise ProtocolError(f"Invalid block length field: {length_field!r}")
    return int(length_field)


def read_definite_block(transport: ScpiTransport) -> bytes:
    """Read one definite-length block from *transport*.

    The payload is read in pieces of at most ``transport.chunk_size`` bytes
    until the declared length is reached. A read returning no data ends the
    transfer early.

    Returns:
        Exactly the declared number of payload bytes.

    Raises:
        ProtocolError: If the header is malformed or fewer bytes than declared
            arrived. Partial payloads are never returned.
    """
    expected = parse_block_header(transport)
    chunk_size = max(1, transport.chunk_size)

    buffer = bytearray()
    while len(buffer) < expected:
        chunk = transport.read_bytes(min(expected - len(buffer), chunk_size))
        if not chunk:
            break
        buffer.extend(chunk)

    if len(buffer) != expected:
        raise ProtocolError(
            f"Failed to read expected amount of data: got {len(buffer)} of {expected} bytes"
        )
    logger.debug("Read %d byte block", expected)
    return bytes(buffer)


@contextmanager
def binary_mode(transport: ScpiTransport) -> Iterator[ScpiTransport]:
    """Switch *transport* to unterminated reads for the duration of the block.

    On exit, whether the body succeeded or raised, the previous read
    terminator is restored and pending input is flushed so the connection is
    back in line mode.
    """
    previous = transport.read_termination
    transport.read_termination = ""
    try:
        yield transport
    finally:
        transport.read_termination = previous
        transport.flush()
