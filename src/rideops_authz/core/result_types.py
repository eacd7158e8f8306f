# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Result types for workflow and escalation operations.

Authorization denials are ordinary outcomes, not failures, so the
approval, escalation and MFA services report them as values instead of
raising. Only configuration and programming errors raise.
"""

from typing import Generic, NoReturn, TypeVar, Union

from attrs import frozen
from beartype import beartype

T = TypeVar("T")
E = TypeVar("E")


@frozen
class Ok(Generic[T]):
    """Successful outcome."""

    value: T

    @beartype
    def is_ok(self) -> bool:
        return True

    @beartype
    def is_err(self) -> bool:
        return False

    @beartype
    def unwrap(self) -> T:
        """Return the wrapped value."""
        return self.value

    @beartype
    def unwrap_or(self, default: T) -> T:
        return self.value

    @beartype
    def unwrap_err(self) -> NoReturn:
        raise ValueError("Called unwrap_err on Ok value")


@frozen
class Err(Generic[E]):
    """Rejected outcome carrying a human-readable reason."""

    error: E

    @beartype
    def is_ok(self) -> bool:
        return False

    @beartype
    def is_err(self) -> bool:
        return True

    @beartype
    def unwrap(self) -> NoReturn:
        raise ValueError(f"Called unwrap on Err value: {self.error}")

    @beartype
    def unwrap_or(self, default: T) -> T:
        return default

    @beartype
    def unwrap_err(self) -> E:
        """Return the wrapped error."""
        return self.error


Result = Union[Ok[T], Err[E]]
