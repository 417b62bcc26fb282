__author__ = "hibernator contributors"
__version__ = "1.0.1"

from re import MULTILINE, search

from hibernator.exceptions import ValidationError
from zenlib.util import colorize as c_


def get_mem_info(self) -> None:
    """Reads MemTotal from /proc/meminfo, stores the total memory in bytes."""
    meminfo = self._read("/proc/meminfo")
    if not meminfo:
        raise ValidationError("Unable to read /proc/meminfo")

    if match := search(r"^MemTotal:\s+(\d+) kB$", meminfo, MULTILINE):
        self["_mem_total"] = int(match.group(1)) * 1024
        self.logger.info("Detected installed memory: %s bytes" % c_(self["_mem_total"], "cyan"))
    else:
        raise ValidationError("MemTotal not found in /proc/meminfo")
