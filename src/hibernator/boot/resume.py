__author__ = "hibernator contributors"
__version__ = "1.0.2"

from hibernator.exceptions import BootConfigError, ResolutionError
from zenlib.util import colorize as c_

DRACUT_RESUME_CONFIG = 'add_dracutmodules+=" resume "'


def _get_kargs(self) -> list[str]:
    """Returns the persistent kernel arguments of the booted deployment."""
    return self._run(["rpm-ostree", "kargs"]).stdout.decode().split()


def inspect_kargs(self) -> None:
    """Records the current persistent kernel arguments."""
    try:
        kargs = _get_kargs(self)
    except RuntimeError as e:
        raise BootConfigError("Unable to read kernel arguments: %s" % e) from e
    self["_kargs"].extend(kargs)
    if existing := [arg for arg in kargs if arg.split("=", 1)[0] in ("resume", "resume_offset")]:
        self.logger.info("Existing resume arguments: %s" % c_(" ".join(existing), "yellow"))
    self.logger.info("Current kernel arguments: %s" % c_(" ".join(kargs), "blue"))


def resolve_resume_uuid(self) -> str:
    """Gets the UUID of the filesystem containing the swap file.
    This is the btrfs filesystem UUID, not the UUID of a partition."""
    try:
        uuid = self._run(["findmnt", "-no", "UUID", "-T", self["swap_file"]]).stdout.decode().strip()
    except RuntimeError as e:
        raise ResolutionError("Unable to find the filesystem UUID for: %s" % self["swap_file"]) from e

    if not uuid:
        raise ResolutionError("No filesystem UUID found for: %s" % self["swap_file"])

    self["_resume_uuid"] = uuid
    self.logger.info("Resume device: %s" % c_(f"UUID={uuid}", "cyan"))
    return uuid


def resolve_resume_offset(self) -> int:
    """Gets the physical offset of the swap file, used by the kernel to find the image without the filesystem."""
    try:
        offset = self._run(["btrfs", "inspect-internal", "map-swapfile", "-r", self["swap_file"]]).stdout.decode().strip()
    except RuntimeError as e:
        raise ResolutionError("Unable to map the swap file offset for: %s" % self["swap_file"]) from e

    if not offset.isdigit():
        raise ResolutionError("[%s] Invalid resume offset: %r" % (self["swap_file"], offset))

    self["_resume_offset"] = int(offset)
    self.logger.info("Resume offset: %s" % c_(offset, "cyan"))
    return self["_resume_offset"]


def get_karg_changes(current: list[str], wanted: list[str]) -> list[str]:
    """Returns the rpm-ostree kargs options needed for wanted to end up in current exactly once per key.
    Identical arguments are left alone, arguments with the same key but a different value are replaced."""
    options = []
    for karg in wanted:
        key = karg.split("=", 1)[0]
        stale = [arg for arg in current if arg.split("=", 1)[0] == key and arg != karg]
        options += [f"--delete={arg}" for arg in stale]
        if karg not in current:
            options.append(f"--append={karg}" if stale else f"--append-if-missing={karg}")
    return options


def append_resume_kargs(self) -> None:
    """Adds the resume and resume_offset kernel arguments to the persistent kernel arguments."""
    wanted = [f"resume=UUID={self['_resume_uuid']}", f"resume_offset={self['_resume_offset']}"]
    try:
        if options := get_karg_changes(self["_kargs"], wanted):
            self._run(["rpm-ostree", "kargs", *options])
            self.logger.info("Updated kernel arguments: %s" % c_(" ".join(options), "green"))
        else:
            self.logger.info("Kernel arguments already present: %s" % c_(" ".join(wanted), "yellow"))
    except RuntimeError as e:
        raise BootConfigError("Failed to update kernel arguments: %s" % e) from e


def write_dracut_config(self) -> None:
    """Writes the dracut config fragment which adds the resume module to the initramfs."""
    self._write(self["dracut_resume_conf"], [DRACUT_RESUME_CONFIG])
    self["check_in_file"] = {str(self["dracut_resume_conf"]): [DRACUT_RESUME_CONFIG]}


def enable_initramfs(self) -> None:
    """Enables local initramfs regeneration, so the dracut config takes effect on the next deployment."""
    if self._try_run(
        ["rpm-ostree", "initramfs", "--enable", "--arg=--force"], "Initramfs regeneration is already enabled."
    ):
        self.logger.info("Enabled initramfs regeneration.")
    self["_boot_configured"] = True
