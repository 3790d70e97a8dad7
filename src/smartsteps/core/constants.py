"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

UNITS_PER_HOUR = 4
DEFAULT_UNIT_MINUTES = 15
COMMUNITY_UNIT_MINUTES = 30

DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 100

MIN_PASSWORD_LENGTH = 8
VIEW_TOKEN_BYTES = 32

PAYROLL_PREVIEW_ROWS = 20
PAYROLL_DUPLICATE_WINDOW_HOURS = 24

SATURDAY = 5
