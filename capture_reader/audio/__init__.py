"""Audio side channel: running power levels of the captured stream."""

from .constants import DB_MAX, DB_MIN
from .power_meter import AudioLevels, PowerMeter

__all__ = ["AudioLevels", "PowerMeter", "DB_MIN", "DB_MAX"]
