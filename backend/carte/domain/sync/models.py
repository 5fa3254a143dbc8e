"""Results of writes that may have landed only in the local cache."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")

OFFLINE_WARNING = "offline_saved_locally"


@dataclass(frozen=True)
class WriteResult(Generic[T]):
    value: T
    confirmed: bool = True
    warning: Optional[str] = None

    @classmethod
    def offline(cls, value: T) -> "WriteResult[T]":
        return cls(value=value, confirmed=False, warning=OFFLINE_WARNING)
