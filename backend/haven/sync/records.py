"""
Record keys
===========
Every entry a store holds is keyed by either ``Pending(temp_id)`` (an
optimistic insert awaiting the server) or ``Confirmed(server_id)``.

The two variants never compare equal, so a temporary id can't collide
with a server-assigned id even when the strings happen to match.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Generic, TypeVar, Union

from pydantic import BaseModel

RecordT = TypeVar("RecordT", bound=BaseModel)


@dataclass(frozen=True)
class Pending:
    temp_id: str

    @property
    def value(self) -> str:
        return self.temp_id


@dataclass(frozen=True)
class Confirmed:
    server_id: str

    @property
    def value(self) -> str:
        return self.server_id


RecordKey = Union[Pending, Confirmed]


def new_pending_key() -> Pending:
    return Pending(uuid.uuid4().hex)


@dataclass(frozen=True)
class Entry(Generic[RecordT]):
    key: RecordKey
    record: RecordT

    @property
    def is_pending(self) -> bool:
        return isinstance(self.key, Pending)
