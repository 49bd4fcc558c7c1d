"""Data models for server records and transport state.

``ServerRecord`` is intentionally minimal: only ``name``, ``type`` and
``address`` carry meaning for the cache.  Every other key the host sends is
kept on the record untouched.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, TypeAdapter


def normalize(value: Any) -> str:
    """Lower-case and trim a name/address/type for comparison."""
    if value is None:
        return ""
    return str(value).strip().lower()


class ServerRecord(BaseModel):
    """A single server in the network's server list."""

    model_config = ConfigDict(extra="allow", frozen=True)

    name: str
    type: str = ""
    address: str

    @property
    def key(self) -> str:
        """Normalised ``name`` used for de-duplication."""
        return normalize(self.name)

    @property
    def address_key(self) -> str:
        """Normalised ``address`` used for eviction."""
        return normalize(self.address)

    @property
    def type_key(self) -> str:
        return normalize(self.type)

    @property
    def extra(self) -> Dict[str, Any]:
        """Opaque fields beyond name/type/address."""
        return dict(self.model_extra or {})


_RECORD_LIST = TypeAdapter(List[ServerRecord])


def parse_records(data: Any) -> List[ServerRecord]:
    """Validate a decoded JSON value as a list of server records.

    Raises :class:`pydantic.ValidationError` for anything that is not a
    sequence of record objects.
    """
    return _RECORD_LIST.validate_python(data)


class TransportState(str, Enum):
    """Usability of the push transport.

    Transitions::

        UNKNOWN ─► CONNECTING ─► AVAILABLE ─► UNAVAILABLE
                        │                          ▲
                        └──────────────────────────┘
    """

    UNKNOWN = "unknown"
    CONNECTING = "connecting"
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
