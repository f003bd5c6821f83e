"""Data models for goodturkey."""

from goodturkey.models.sites import (
    DEFAULT_CATEGORY_COLOR,
    Category,
    Restriction,
    SiteStatus,
    TimeWindow,
    new_id,
    parse_time_of_day,
)

__all__ = [
    "DEFAULT_CATEGORY_COLOR",
    "Category",
    "Restriction",
    "SiteStatus",
    "TimeWindow",
    "new_id",
    "parse_time_of_day",
]
