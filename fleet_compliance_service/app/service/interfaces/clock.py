from abc import ABC, abstractmethod
import datetime


class AbstractClock(ABC):
    """Source of the current time for the verification rules.

    The rules never read the system clock directly, so decisions are
    reproducible for a given instant.
    """

    @abstractmethod
    def now(self) -> datetime.datetime:
        """Returns the current instant as a timezone-aware datetime."""
        pass


class FixedClock(AbstractClock):
    """A clock pinned to one instant."""

    def __init__(self, instant: datetime.datetime):
        self._instant = instant

    def now(self) -> datetime.datetime:
        return self._instant
