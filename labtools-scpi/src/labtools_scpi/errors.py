"""Instrument error queue entries and the exceptions that carry them.

Instruments report failed commands through their ``SYST:ERR?`` queue rather
than in the reply to the command itself. :class:`ScpiInstrumentError` is one
queue entry; :class:`ScpiCommandError` is raised when a connection with
automatic checking finds the queue non-empty.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from labtools_core.errors import LabtoolsError

# Optional sign, code, comma, then the message with or without quotes.
_QUEUE_ENTRY_RE = re.compile(r'^\s*([+-]?\d+)\s*,\s*"?([^"]*)"?\s*$')


class ScpiError(LabtoolsError):
    """Base exception for errors reported by an instrument."""


@dataclass(frozen=True)
class ScpiInstrumentError:
    """One entry drained from an instrument's error queue.

    Attributes:
        code: Negative for standard SCPI errors, positive for device-specific ones.
        message: Description as reported by the instrument.
    """

    code: int
    message: str

    @classmethod
    def parse(cls, raw: str) -> ScpiInstrumentError | None:
        """Parse a ``SYST:ERR?`` reply.

        Returns None for the empty-queue reply (code 0 or "No error") and for
        replies that do not look like a queue entry at all.
        """
        match = _QUEUE_ENTRY_RE.match(raw)
        if match is None:
            return None
        code = int(match.group(1))
        message = match.group(2).strip()
        if code == 0 or message.lower() == "no error":
            return None
        return cls(code=code, message=message)

    def __str__(self) -> str:
        return f'{self.code},"{self.message}"'


class ScpiCommandError(ScpiError):
    """Raised when the error queue is non-empty after a checked exchange.

    Attributes:
        errors: The entries drained from the queue, oldest first.
    """

    def __init__(self, errors: tuple[ScpiInstrumentError, ...]) -> None:
        self.errors = errors
        super().__init__("Instrument reported: " + "; ".join(str(e) for e in errors))
