"""Bluetooth hardware addresses."""

from __future__ import annotations

import re
from dataclasses import dataclass

_ADDRESS_RE = re.compile(r"^[0-9A-Fa-f]{2}([:-])(?:[0-9A-Fa-f]{2}\1){4}[0-9A-Fa-f]{2}$")


@dataclass(frozen=True)
class PeerAddress:
    """A 48-bit Bluetooth device address in canonical form.

    The canonical form is six colon-separated upper-case hex octets,
    which is also how BlueZ reports the ``Address`` property.  Two
    addresses are equal when their canonical forms are equal, so
    comparison is case-insensitive and separator-insensitive.

    Example::

        >>> PeerAddress("aa-bb-cc-dd-ee-ff")
        PeerAddress('AA:BB:CC:DD:EE:FF')
    """

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str):
            raise ValueError(
                f"address must be a string, got {type(self.value).__name__}"
            )
        stripped = self.value.strip()
        if not _ADDRESS_RE.match(stripped):
            raise ValueError(f"invalid Bluetooth address: {self.value!r}")
        object.__setattr__(self, "value", stripped.replace("-", ":").upper())

    @classmethod
    def parse(cls, text: str) -> PeerAddress:
        """Parse ``AA:BB:CC:DD:EE:FF`` (or ``-`` separated) text.

        Same as calling the constructor.  Raises ``ValueError`` for
        anything that is not six hex octets.
        """
        return cls(text)

    def __str__(self) -> str:
        return self.value

    def __repr__(self) -> str:
        return f"PeerAddress({self.value!r})"
