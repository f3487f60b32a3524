"""Retention time transfer between spectra and integration intervals."""

from .interpolation import (
    ComparableRetentionTime,
    Interval,
    RetentionTimes,
    RetentionTimeEntry,
    RetentionTimeDatabase,
    select_reference,
    build_retention_time_database,
    widen_and_merge,
    merge_intervals,
)

__all__ = [
    'ComparableRetentionTime',
    'Interval',
    'RetentionTimes',
    'RetentionTimeEntry',
    'RetentionTimeDatabase',
    'select_reference',
    'build_retention_time_database',
    'widen_and_merge',
    'merge_intervals',
]
