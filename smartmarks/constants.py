"""
Constants for SmartMarks.

Several of these are also exposed through the config system.
"""

# Network timeouts (in seconds)
DEFAULT_REQUEST_TIMEOUT = 10

# Seconds between checks for changes written by other processes
DEFAULT_POLL_INTERVAL = 1.0

# Limits
MAX_TITLE_LENGTH = 512
MAX_URL_LENGTH = 2048

# URL schemes a bookmark may use
ALLOWED_SCHEMES = ("http", "https")

# Sort order names as accepted on the command line and in config
SORT_NEWEST = "newest"
SORT_OLDEST = "oldest"

# Display
DEFAULT_TITLE_WIDTH = 50
DEFAULT_URL_WIDTH = 60
