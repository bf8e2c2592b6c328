"""Constants for audio level metering."""

DB_MIN = -60.0
DB_MAX = 0.0
DEFAULT_METER_WINDOW = 5
DEFAULT_METER_CHANNELS = 2
