"""Base interface for declared cloud resources."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any, ClassVar

from google.api_core.retry import Retry

from n8n_cloudrun.lib.logging_config import get_logger
from n8n_cloudrun.models.deployment import ApplyResult, Change

logger = get_logger(__name__)


class Resource(ABC):
    """Abstract base class for a declared cloud resource.

    A resource knows how to read its live state, create itself, and
    optionally bring an existing instance in line with its declaration.
    ``apply`` is convergent: applying an already satisfied declaration
    issues no mutating call.

    Attributes:
        key: Unique key of the resource inside a graph
        depends_on: Keys of the resources that must be applied first
    """

    kind: ClassVar[str] = "resource"

    # Dependents cannot be read until this resource exists
    blocks_reads: ClassVar[bool] = False

    def __init__(self, key: str, *, depends_on: Iterable[str] = ()) -> None:
        self.key = key
        self.depends_on = tuple(depends_on)

    @property
    @abstractmethod
    def name(self) -> str:
        """Cloud-side name of the resource."""

    @abstractmethod
    def read(self) -> Any | None:
        """Return the live resource, or None when it does not exist.

        Raises:
            Exception: Any API error other than "not found"
        """

    @abstractmethod
    def create(self) -> None:
        """Create the resource and wait until it is usable."""

    def needs_update(self, current: Any) -> bool:
        """Return True when the live resource differs from the declaration."""
        return False

    def update(self, current: Any) -> None:
        """Bring the live resource in line with the declaration.

        Only called when ``needs_update`` returns True. Resources that keep
        the default ``needs_update`` never drift and need no update path.
        """
        raise NotImplementedError(f"{self.kind} '{self.name}' cannot be updated")

    def describe(self) -> str:
        """Human-readable identification used in logs and errors."""
        return f"{self.kind} '{self.name}'"

    def plan(self, *, assume_absent: bool = False) -> ApplyResult:
        """Report what ``apply`` would do without mutating anything.

        Args:
            assume_absent: Skip the read and report a creation, used when
                a prerequisite of this resource would itself be created
        """
        current = None if assume_absent else self.read()
        if current is None:
            change = Change.CREATED
        elif self.needs_update(current):
            change = Change.UPDATED
        else:
            change = Change.UNCHANGED
        return self._result(change)

    def apply(self, *, settle: Retry | None = None) -> ApplyResult:
        """Create or update the resource as needed.

        Args:
            settle: Retry policy for the read, used when a prerequisite was
                created moments ago and may not have propagated yet
        """
        read = settle(self.read) if settle is not None else self.read
        current = read()
        if current is None:
            logger.info(f"Creating {self.describe()}")
            self.create()
            return self._result(Change.CREATED)

        if self.needs_update(current):
            logger.info(f"Updating {self.describe()}")
            self.update(current)
            return self._result(Change.UPDATED)

        logger.debug(f"{self.describe()} is up to date")
        return self._result(Change.UNCHANGED)

    def _result(self, change: Change) -> ApplyResult:
        return ApplyResult(key=self.key, kind=self.kind, name=self.name, change=change)
