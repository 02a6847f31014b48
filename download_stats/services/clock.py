from datetime import datetime
from zoneinfo import ZoneInfo

from download_stats.core.settings import settings


class SiteClock:
    """Wall clock in the site's timezone, returned naive at second precision."""

    def __init__(self, timezone_name: str = "UTC") -> None:
        self.tz = ZoneInfo(timezone_name)

    def __call__(self) -> datetime:
        return datetime.now(tz=self.tz).replace(microsecond=0, tzinfo=None)


def get_clock() -> SiteClock:
    return SiteClock(settings.site_timezone)
