"""
Policy constants for overtime, expenses, calendar and receipt handling.
"""

from datetime import timedelta
from typing import Final

#: Overtime may only be claimed in slices of this many minutes.
OVERTIME_GRANULARITY_MINUTES: Final[int] = 30

#: Minutes accepted in the "minutes" field of a claim form.
CLAIM_MINUTE_OPTIONS: Final[frozenset[int]] = frozenset({0, 30})

#: Used when the upstream row carries no scheduled duration.
DEFAULT_SCHEDULED_HOURS: Final[float] = 8.0

#: Upper bound for a single authorization lookup against the record store.
AUTHORIZATION_LOOKUP_TIMEOUT_SECONDS: Final[float] = 5.0

#: Currency amounts are quantized to cents.
CURRENCY_DECIMAL_PLACES: Final[int] = 2

EXPENSE_SUBMISSION_WINDOW: Final[timedelta] = timedelta(hours=48)

#: 6 rows x 7 columns, Monday first.
CALENDAR_GRID_CELLS: Final[int] = 42

RECEIPT_MAX_DIMENSION: Final[int] = 1920
RECEIPT_QUALITY: Final[float] = 0.85
RECEIPT_FORMAT: Final[str] = "JPEG"
