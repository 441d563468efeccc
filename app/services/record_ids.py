"""Typed record ids.

A record id carries where it was minted, so the store can tell a record
that only exists in the local mirror from one the remote store knows
about without inspecting the id string.
"""

import uuid
from dataclasses import dataclass
from enum import Enum


class IdOrigin(str, Enum):
    REMOTE = "remote"  # minted by the remote document store
    LOCAL = "local"    # minted on this device (offline / fallback write)
    SEED = "seed"      # part of the built-in default dataset

    @property
    def is_local(self):
        return self is not IdOrigin.REMOTE


@dataclass(frozen=True)
class RecordId:
    value: str
    origin: IdOrigin = IdOrigin.REMOTE

    @classmethod
    def new_local(cls):
        return cls(f"local_{uuid.uuid4().hex}", IdOrigin.LOCAL)

    @property
    def is_local(self):
        return self.origin.is_local

    def __str__(self):
        return self.value
