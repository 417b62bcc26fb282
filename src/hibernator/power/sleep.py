__author__ = "hibernator contributors"
__version__ = "0.3.0"

from re import MULTILINE, escape, subn
from typing import Optional

from zenlib.util import colorize as c_

LID_SWITCH_KEYS = ["HandleLidSwitch", "HandleLidSwitchExternalPower"]


def set_key(text: str, key: str, value: str) -> tuple[str, int]:
    """Sets every active or commented out 'key=' line to 'key=value'.
    Returns the new text and the number of lines replaced."""
    return subn(rf"^#?[ \t]*{escape(key)}=.*$", f"{key}={value}", text, flags=MULTILINE)


def get_section_bounds(lines: list[str], section: str) -> Optional[tuple[int, int]]:
    """Returns the index of the section header and the index the section ends at.
    Returns None if the section does not exist."""
    stripped = [line.strip() for line in lines]
    if f"[{section}]" not in stripped:
        return None

    start = stripped.index(f"[{section}]")
    for end in range(start + 1, len(stripped)):
        if stripped[end].startswith("["):
            return start, end
    return start, len(stripped)


def set_section_keys(text: str, section: str, values: dict[str, str]) -> str:
    """Sets keys in a systemd style config.
    If the section does not exist it is appended with the values.
    Keys are only replaced within the section, missing keys are added below the section header.
    Lines outside of the section are never changed."""
    lines = text.splitlines()
    if not (bounds := get_section_bounds(lines, section)):
        if text and not text.endswith("\n"):
            text += "\n"
        section_lines = [f"[{section}]"] + [f"{key}={value}" for key, value in values.items()]
        return text + ("\n" if text else "") + "\n".join(section_lines) + "\n"

    start, end = bounds
    missing = dict(values)
    for index in range(start + 1, end):
        for key, value in values.items():
            lines[index], count = set_key(lines[index], key, value)
            if count:
                missing.pop(key, None)

    lines[start + 1 : start + 1] = [f"{key}={value}" for key, value in missing.items()]
    return "\n".join(lines) + "\n"


def inspect_power_policy(self) -> None:
    """Logs config files which will be created."""
    for conf in (self["logind_conf"], self["sleep_conf"]):
        if not self._get_host_path(conf).is_file():
            self.logger.info("Config file does not exist, it will be created: %s" % c_(conf, "yellow"))


def configure_lid_switch(self) -> None:
    """Sets the lid switch action, on battery and external power, in logind.conf."""
    values = {key: self["lid_switch_action"] for key in LID_SWITCH_KEYS}
    if self._write(self["logind_conf"], set_section_keys(self._read(self["logind_conf"]), "Login", values)):
        self.logger.info("Set lid switch action: %s" % c_(self["lid_switch_action"], "green"))
    else:
        self.logger.info("Lid switch action is already set: %s" % c_(self["lid_switch_action"], "yellow"))
    self["check_in_file"] = {str(self["logind_conf"]): [f"{key}={value}" for key, value in values.items()]}


def configure_sleep(self) -> None:
    """Sets the hibernate delay and mode in sleep.conf."""
    values = {"HibernateDelaySec": self["hibernate_delay"], "HibernateMode": self["hibernate_mode"]}
    if self._write(self["sleep_conf"], set_section_keys(self._read(self["sleep_conf"]), "Sleep", values)):
        self.logger.info(
            "Set hibernate delay: %s, mode: %s" % (c_(self["hibernate_delay"], "green"), c_(self["hibernate_mode"], "green"))
        )
    else:
        self.logger.info("Sleep settings are already set.")
    self["check_in_file"] = {str(self["sleep_conf"]): [f"{key}={value}" for key, value in values.items()]}
