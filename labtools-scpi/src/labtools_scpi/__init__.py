"""SCPI protocol library for labtools bench automation.

This package provides SCPI (Standard Commands for Programmable Instruments)
communication infrastructure for bench instrument automation. It includes:

- Transport abstraction for SCPI message passing
- PyVISA-backed transport for instrument-bus resources
- pyserial-backed transport for plain serial ports
- High-level connection with settle delays and error queue access
- IEEE 488.2 definite-length block transfer reading
- Number parsing utilities for SCPI responses
- Custom exception types for SCPI protocol errors

Typical usage::

    from labtools_scpi import VisaResource, ScpiConnection

    transport = VisaResource("ASRL3::INSTR")
    transport.open()
    conn = ScpiConnection(transport)
    identity = conn.get_identity()
    print(f"Connected to {identity.manufacturer} {identity.model}")
    conn.close()
"""

from labtools_scpi.block import binary_mode, parse_block_header, read_definite_block
from labtools_scpi.connection import ScpiConnection, parse_idn_response
from labtools_scpi.errors import ScpiCommandError, ScpiError, ScpiInstrumentError
from labtools_scpi.number import parse_int, parse_number
from labtools_scpi.serial_port import SerialPort, list_serial_ports
from labtools_scpi.transport import ScpiTransport
from labtools_scpi.visa import VisaResource, list_visa_resources

__all__ = [
    # Block transfer
    "binary_mode",
    "parse_block_header",
    "read_definite_block",
    # Connection
    "ScpiConnection",
    "parse_idn_response",
    # Errors
    "ScpiCommandError",
    "ScpiError",
    "ScpiInstrumentError",
    # Number parsing
    "parse_int",
    "parse_number",
    # Transport
    "ScpiTransport",
    # Serial
    "SerialPort",
    "list_serial_ports",
    # VISA
    "VisaResource",
    "list_visa_resources",
]
