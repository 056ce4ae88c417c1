import datetime

from fleet_compliance_service.app.service.interfaces.clock import AbstractClock


class SystemClock(AbstractClock):
    """Wall-clock time in UTC."""

    def now(self) -> datetime.datetime:
        return datetime.datetime.now(datetime.UTC)


# Dependency Injection provider function
def get_clock() -> AbstractClock:
    return SystemClock()
