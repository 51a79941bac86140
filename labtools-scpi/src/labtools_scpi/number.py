"""Parsing of numeric instrument replies.

Replies come as integers (``"42"``), fixed point (``"-0.5"``) or scientific
notation (``"2.0400E-01"``). Not-a-number and infinity arrive either as the
mnemonics ``NAN``/``INF``/``NINF`` or as the reserved magnitudes 9.91E37 and
9.9E37, which oscilloscopes return for a measurement they could not make.
"""

from __future__ import annotations

import math

_MNEMONICS = {
    "NAN": math.nan,
    "INF": math.inf,
    "+INF": math.inf,
    "NINF": -math.inf,
    "-INF": -math.inf,
}

SCPI_NAN = 9.91e37
SCPI_INF = 9.9e37


def parse_number(text: str) -> float:
    """Parse a numeric reply into a float.

    Raises:
        ValueError: If *text* is not a number.
    """
    token = text.strip().upper()
    if token in _MNEMONICS:
        return _MNEMONICS[token]
    try:
        value = float(token)
    except ValueError:
        raise ValueError(f"Invalid SCPI number: {text!r}") from None
    if value == SCPI_NAN:
        return math.nan
    if abs(value) == SCPI_INF:
        return math.copysign(math.inf, value)
    return value


def parse_int(text: str) -> int:
    """Parse an integer reply.

    ``"4.0"`` is accepted since some instruments answer integer queries in
    fixed point.

    Raises:
        ValueError: If *text* is not an integral number.
    """
    token = text.strip()
    try:
        return int(token)
    except ValueError:
        pass
    try:
        value = float(token)
    except ValueError:
        raise ValueError(f"Invalid SCPI integer: {text!r}") from None
    if not value.is_integer():
        raise ValueError(f"Invalid SCPI integer: {text!r}")
    return int(value)
