__author__ = "hibernator contributors"
__version__ = "1.1.0"

from enum import StrEnum

from hibernator.exceptions import AllocationError, ValidationError
from zenlib.util import colorize as c_
from zenlib.util import unset

GiB = 1024**3


class SwapState(StrEnum):
    CREATED = "created"
    ALREADY_PRESENT = "already_present"


def swap_size_gib(mem_total: int, buffer_gib: int = 4) -> int:
    """Returns the swap size in GiB needed to hibernate with mem_total bytes of memory.
    Memory is rounded up to the next GiB before the buffer is added."""
    return -(-mem_total // GiB) + buffer_gib


def _fstab_has_swap(self) -> bool:
    """Checks if any active fstab entry uses the swap file as its source."""
    for line in self._read("/etc/fstab").splitlines():
        fields = line.split()
        if fields and not fields[0].startswith("#") and fields[0] == str(self["swap_file"]):
            return True
    return False


def _swap_is_active(self) -> bool:
    """Checks /proc/swaps for the swap file."""
    for line in self._read("/proc/swaps").splitlines()[1:]:
        if line.split() and line.split()[0] == str(self["swap_file"]):
            return True
    return False


def check_swap_paths(self) -> None:
    """Ensures the swap file is placed directly inside the swap subvolume."""
    if self["swap_file"].parent != self["swap_path"]:
        raise ValidationError("Swap file '%s' is not inside the swap path: %s" % (self["swap_file"], self["swap_path"]))


def inspect_swap(self) -> None:
    """Records the current swap file, fstab and activation state."""
    self["_swap_file_exists"] = self._get_host_path(self["swap_file"]).exists()
    self["_swap_in_fstab"] = _fstab_has_swap(self)
    self["_swap_active"] = _swap_is_active(self)
    self.logger.info(
        "[%s] Exists: %s, in fstab: %s, active: %s"
        % (c_(self["swap_file"], "blue"), self["_swap_file_exists"], self["_swap_in_fstab"], self["_swap_active"])
    )


@unset("swap_size", message="swap_size is set, skipping calculation.", log_level=20)
def calculate_swap_size(self) -> None:
    """Sets the swap size from the installed memory, rounded up, plus the buffer."""
    self["swap_size"] = swap_size_gib(self["_mem_total"], self["swap_size_buffer"])
    self.logger.info(
        "System RAM: %dGiB | Target swap: %s"
        % (-(-self["_mem_total"] // GiB), c_(f"{self['swap_size']}GiB", "green", bold=True))
    )


def create_swapfile(self) -> SwapState:
    """Creates the swap subvolume and a NoCOW swap file, unless the swap file already exists.
    An existing swap file is never resized."""
    swap_file = self._get_host_path(self["swap_file"])
    if swap_file.exists():
        expected_size = self["swap_size"] * GiB
        if (current_size := swap_file.stat().st_size) != expected_size:
            self.logger.warning(
                "[%s] Existing swap file size %d differs from the target %d, it must be deleted to be resized."
                % (swap_file, current_size, expected_size)
            )
        self.logger.info("Swap file already exists, skipping creation: %s" % c_(self["swap_file"], "yellow"))
        self["_swap_state"] = SwapState.ALREADY_PRESENT
        return SwapState.ALREADY_PRESENT

    try:
        if not self._get_host_path(self["swap_path"]).is_dir():
            self._run(["btrfs", "subvolume", "create", self["swap_path"]])
            self.logger.info("Created swap subvolume: %s" % c_(self["swap_path"], "green"))
        # Only affects files created afterwards, must run before the swap file is made
        self._run(["chattr", "+C", self["swap_path"]])
        self._run(["btrfs", "filesystem", "mkswapfile", "--size", f"{self['swap_size']}G", self["swap_file"]])
        swap_file.chmod(0o600)
    except (RuntimeError, OSError) as e:
        raise AllocationError("Failed to create swap file '%s': %s" % (self["swap_file"], e)) from e

    self.logger.info("Created %dGiB swap file: %s" % (self["swap_size"], c_(self["swap_file"], "green", bold=True)))
    self["_swap_state"] = SwapState.CREATED
    return SwapState.CREATED


def register_swap(self) -> None:
    """Adds a low priority fstab entry for the swap file, if one does not exist."""
    entry = f"{self['swap_file']} none swap defaults,pri={self['swap_priority']} 0 0"
    if _fstab_has_swap(self):
        self.logger.info("Swap file is already in /etc/fstab: %s" % c_(self["swap_file"], "yellow"))
    else:
        self._write("/etc/fstab", [entry], append=True)
        self.logger.info("Added to /etc/fstab: %s" % c_(entry, "green"))
        self["check_in_file"] = {"/etc/fstab": [entry]}


@unset("_swap_active", message="Swap file is already active, skipping activation.", log_level=20)
def activate_swap(self) -> None:
    """Activates the swap file now, it is activated from fstab on the next boot regardless."""
    if self._try_run(["swapon", self["swap_file"]], "Failed to activate swap file: %s" % self["swap_file"]):
        self.logger.info("Activated swap file: %s" % c_(self["swap_file"], "green"))
