"""Error taxonomy and the Ok/Err result carried by every public operation."""

from __future__ import annotations

import functools
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar, Union

T = TypeVar("T")


class HourbookError(Exception):
    """Base class for every failure this package reports."""

    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ValidationError(HourbookError):
    """Malformed date, hour, position, range or list kind."""

    kind = "validation"


class NotFound(HourbookError):
    """Missing document, template or task id."""

    kind = "not_found"


class ImmutableEntryError(HourbookError):
    """Text was appended to a slot holding a task reference."""

    kind = "immutable_entry"


class StorageUnavailable(HourbookError):
    """The document store failed to read or write. Always raised, never wrapped."""

    kind = "storage"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Err:
    error: HourbookError

    @property
    def ok(self) -> bool:
        return False

    def unwrap(self):
        raise self.error


Result = Union[Ok[T], Err]

# Failures a caller is expected to handle. StorageUnavailable propagates.
EXPECTED_ERRORS = (ValidationError, NotFound, ImmutableEntryError)


def returns_result(fn: Callable[..., Result]) -> Callable[..., Result]:
    """Turn expected failures raised inside *fn* into ``Err`` values."""

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except EXPECTED_ERRORS as e:
            return Err(e)

    return wrapper
