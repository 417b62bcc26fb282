__author__ = "hibernator contributors"
__version__ = "0.3.0"

from pathlib import Path
from tempfile import TemporaryDirectory

from hibernator.exceptions import PolicyCompileError
from zenlib.util import colorize as c_

POLICY_TEMPLATE = """module {name} {version};

require {{
    type systemd_logind_t;
    type systemd_sleep_t;
    type {swap_type};
    type unconfined_service_t;
    class dir {{ search }};
    class file {{ read write open getattr lock ioctl }};
    class capability2 {{ mac_admin }};
}}

# logind checks the swap space before allowing hibernation
allow systemd_logind_t {swap_type}:dir search;

# systemd-sleep writes the hibernation image
allow systemd_sleep_t {swap_type}:dir search;
allow systemd_sleep_t {swap_type}:file {{ read write open getattr lock ioctl }};

# Broader alternative, not enabled
# allow unconfined_service_t unconfined_service_t:capability2 mac_admin;
"""


def generate_policy_source(self) -> str:
    """Returns the type enforcement source for the swap file policy module."""
    return POLICY_TEMPLATE.format(
        name=self["selinux_module_name"], version=self["selinux_module_version"], swap_type=self["selinux_swap_type"]
    )


def inspect_policy(self) -> None:
    """Checks if the policy module is already loaded. Reinstalling it is harmless either way."""
    cmd = self._run(["semodule", "-l"], fail_silent=True, fail_hard=False)
    if cmd.returncode != 0:
        return self.logger.warning("Unable to list SELinux modules.")

    self["_selinux_module_installed"] = self["selinux_module_name"] in cmd.stdout.decode().split()
    self.logger.info(
        "[%s] SELinux module installed: %s" % (c_(self["selinux_module_name"], "blue"), self["_selinux_module_installed"])
    )


def install_selinux_policy(self) -> list[Path]:
    """Compiles, packages and installs the policy module.
    Intermediate files are created in a temporary directory, removed once installed.
    Returns the paths the compiled artifacts were built at, they are removed by the time this returns."""
    name = self["selinux_module_name"]
    with TemporaryDirectory(prefix="hibernator-") as build_dir:
        te_file = Path(build_dir) / f"{name}.te"
        mod_file = te_file.with_suffix(".mod")
        pp_file = te_file.with_suffix(".pp")

        te_file.write_text(generate_policy_source(self))
        self.logger.debug("[%s] Wrote policy source:\n%s" % (te_file, te_file.read_text()))
        try:
            self._run(["checkmodule", "-M", "-m", "-o", mod_file, te_file])
            self._run(["semodule_package", "-o", pp_file, "-m", mod_file])
            self._run(["semodule", "-i", pp_file])
        except RuntimeError as e:
            raise PolicyCompileError("[%s] Failed to install SELinux policy module: %s" % (name, e)) from e

    action = "Replaced" if self["_selinux_module_installed"] else "Installed"
    self.logger.info("%s SELinux policy module: %s" % (action, c_(name, "green", bold=True)))
    return [mod_file, pp_file]


def label_swap_path(self) -> None:
    """Registers the swap file context for the swap path, then relabels it."""
    fcontext = f"{self['swap_path']}(/.*)?"
    if self._try_run(
        ["semanage", "fcontext", "-a", "-t", self["selinux_swap_type"], fcontext],
        "File context is already registered: %s" % fcontext,
    ):
        self.logger.info("Registered file context: %s -> %s" % (c_(fcontext, "blue"), self["selinux_swap_type"]))

    try:
        self._run(["restorecon", "-RF", self["swap_path"]])
    except RuntimeError as e:
        raise PolicyCompileError("Failed to relabel swap path '%s': %s" % (self["swap_path"], e)) from e
    self.logger.info("Relabeled swap path: %s" % c_(self["swap_path"], "green"))
