# storefront/schemas/keys.py
import itertools
import time
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict


class ProvisionalKey(BaseModel):
    """
    Client-minted placeholder for an entry the store has not confirmed yet.

    Never sent to the store: there is no server row behind it.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["provisional"] = "provisional"
    tag: str

    def __str__(self) -> str:
        return self.tag


class PersistedKey(BaseModel):
    """
    Identifier assigned by the remote store on first successful insert.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["persisted"] = "persisted"
    id: str

    def __str__(self) -> str:
        return self.id


EntryKey = Union[ProvisionalKey, PersistedKey]


def is_provisional(key: EntryKey) -> bool:
    return isinstance(key, ProvisionalKey)


class ProvisionalKeyFactory:
    """
    Mint unique provisional keys: <prefix><counter>-<epoch millis>.

    The counter keeps keys unique even when two are minted within the
    same millisecond.
    """

    def __init__(self, prefix: str = "local_"):
        self.prefix = prefix
        self._counter = itertools.count(1)

    def mint(self) -> ProvisionalKey:
        millis = int(time.time() * 1000)
        return ProvisionalKey(tag=f"{self.prefix}{next(self._counter)}-{millis}")
