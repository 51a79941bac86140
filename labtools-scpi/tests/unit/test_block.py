"""Tests for definite-length block transfer reading."""

from __future__ import annotations

import pytest

from labtools_core.errors import ProtocolError

from labtools_scpi.block import binary_mode, parse_block_header, read_definite_block


class ByteTransport:
    """Transport that serves a fixed byte stream and counts reads."""

    def __init__(self, stream: bytes, chunk_size: int = 4096) -> None:
        self.stream = bytearray(stream)
        self.chunk_size = chunk_size
        self.read_termination = "\n"
        self.requests: list[int] = []
        self.flushed = 0

    def write(self, message: str) -> None:  # pragma: no cover - unused
        pass

    def read(self) -> str:  # pragma: no cover - unused
        return ""

    def read_bytes(self, count: int) -> bytes:
        self.requests.append(count)
        data = bytes(self.stream[:count])
        del self.stream[:count]
        return data

    def flush(self) -> None:
        self.flushed += 1

    def close(self) -> None:  # pragma: no cover - unused
        pass


class TestParseBlockHeader:
    """Tests for parse_block_header."""

    def test_three_digit_length(self) -> None:
        assert parse_block_header(ByteTransport(b"#3120")) == 120

    def test_single_digit_length(self) -> None:
        assert parse_block_header(ByteTransport(b"#15")) == 5

    def test_missing_marker(self) -> None:
        with pytest.raises(ProtocolError, match="No #"):
            parse_block_header(ByteTransport(b"3120"))

    def test_zero_digit_count_rejected(self) -> None:
        with pytest.raises(ProtocolError, match="digit count"):
            parse_block_header(ByteTransport(b"#0"))

    def test_non_digit_count_rejected(self) -> None:
        with pytest.raises(ProtocolError, match="digit count"):
            parse_block_header(ByteTransport(b"#A"))

    def test_non_digit_length_rejected(self) -> None:
        with pytest.raises(ProtocolError, match="length field"):
            parse_block_header(ByteTransport(b"#31x0"))

    def test_truncated_length_rejected(self) -> None:
        with pytest.raises(ProtocolError, match="length field"):
            parse_block_header(ByteTransport(b"#31"))


class TestReadDefiniteBlock:
    """Tests for read_definite_block."""

    def test_returns_exact_payload(self) -> None:
        payload = bytes(i % 256 for i in range(120))
        transport = ByteTransport(b"#3120" + payload)
        assert read_definite_block(transport) == payload

    def test_leaves_trailing_bytes_unread(self) -> None:
        transport = ByteTransport(b"#14abcd\n")
        assert read_definite_block(transport) == b"abcd"
        assert bytes(transport.stream) == b"\n"

    def test_reads_in_bounded_chunks(self) -> None:
        payload = b"z" * 100
        transport = ByteTransport(b"#3100" + payload, chunk_size=32)
        assert read_definite_block(transport) == payload
        # Header reads, then 32 + 32 + 32 + 4
        assert transport.requests[3:] == [32, 32, 32, 4]

    def test_short_payload_raises(self) -> None:
        transport = ByteTransport(b"#3120" + b"x" * 60)
        with pytest.raises(ProtocolError, match="got 60 of 120"):
            read_definite_block(transport)

    def test_empty_payload(self) -> None:
        assert read_definite_block(ByteTransport(b"#10")) == b""


class TestBinaryMode:
    """Tests for the binary_mode context manager."""

    def test_clears_and_restores_terminator(self) -> None:
        transport = ByteTransport(b"")
        with binary_mode(transport):
            assert transport.read_termination == ""
        assert transport.read_termination == "\n"
        assert transport.flushed == 1

    def test_restores_on_failure(self) -> None:
        transport = ByteTransport(b"?")
        with pytest.raises(ProtocolError):
            with binary_mode(transport):
                read_definite_block(transport)
        assert transport.read_termination == "\n"
        assert transport.flushed == 1
