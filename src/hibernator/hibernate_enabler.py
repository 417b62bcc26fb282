from contextlib import contextmanager
from fcntl import LOCK_EX, LOCK_NB, LOCK_UN, flock
from importlib.metadata import PackageNotFoundError, version
from tomllib import TOMLDecodeError, load

from zenlib.logging import loggify
from zenlib.util import colorize as c_

from .exceptions import ConcurrentRunError, PrivilegeError, ValidationError
from .hibernate_dict import HibernateConfigDict
from .host_helpers import HostHelpers

# Parameters each stage expects the previous stages to have produced
STAGE_REQUIREMENTS = {
    "inspect": [],
    "size_swap": ["_mem_total"],
    "provision_swap": ["swap_size"],
    "install_policy": ["_swap_state"],
    "resolve_resume": ["_swap_state"],
    "configure_boot": ["_resume_uuid", "_resume_offset"],
    "configure_power": ["_boot_configured"],
}


@loggify
class HibernateEnabler(HostHelpers):
    def __init__(self, config="/etc/hibernator/config.toml", *args, **kwargs):
        self.config_dict = HibernateConfigDict(NO_BASE=kwargs.pop("NO_BASE", False), logger=self.logger)

        # Stages run strictly in this order, there is no branching back
        self.stages = list(STAGE_REQUIREMENTS)
        self.state = "start"
        self.failed_stage = None
        self.warnings = []

        # Passed kwargs must be imported early, so they will be processed against the base configuration
        self.config_dict.import_args(kwargs)
        try:
            self.load_config(config)
            self.config_dict.import_args(kwargs, quiet=True)  # cmdline params win over the config file
        except FileNotFoundError:
            if config:
                self.logger.critical("[%s] Config file not found, using the base config." % config)
            else:
                self.logger.info("No config file specified, using the base config.")
        except TOMLDecodeError as e:
            raise ValueError("[%s] Error decoding config file: %s" % (config, e))

    def load_config(self, config_filename) -> None:
        """
        Loads the config from the specified toml file.
        Values are processed into self.config_dict.
        """
        if not config_filename:
            raise FileNotFoundError("Config file not specified.")

        with open(config_filename, "rb") as config_file:
            self.logger.info("Loading config file: %s" % c_(config_file.name, "blue", bold=True, bright=True))
            raw_config = load(config_file)

        for config, value in raw_config.items():
            self.logger.debug("[%s] (%s) Processing config value: %s" % (config_file.name, config, value))
            self[config] = value

        self.logger.debug("Loaded config:\n%s" % self.config_dict)

    #  If the enabler is used as a dictionary, it will use the config_dict.
    def __setitem__(self, key, value):
        self.config_dict[key] = value

    def __getitem__(self, item):
        return self.config_dict[item]

    def __contains__(self, item):
        return item in self.config_dict

    def get(self, item, default=None):
        return self.config_dict.get(item, default)

    def __getattr__(self, item):
        """Allows access to the config dict via the HibernateEnabler object."""
        if item not in self.__dict__ and item != "config_dict":
            return self[item]
        return super().__getattr__(item)

    def run(self) -> None:
        """Runs every provisioning stage in order.
        A failing stage aborts the run, stages which already ran are left applied."""
        try:
            self._log_run(f"Running hibernator v{version('hibernator')}")
        except PackageNotFoundError:
            self._log_run("Running hibernator")

        if not self._is_privileged():
            self.state = "aborted"
            self.failed_stage = "start"
            raise PrivilegeError("hibernator must be run as root.")

        with self._lock():
            for stage in self.stages:
                self.state = stage
                try:
                    self.check_stage_requirements(stage)
                    self.run_stage(stage)
                except Exception as e:
                    self.state = "aborted"
                    self.failed_stage = stage
                    self.logger.critical("[%s] Stage failed: %s" % (c_(stage, "red", bold=True), e))
                    raise

            self.config_dict.validate()
            self.run_checks()
            self.state = "done"

        if self.warnings:
            self.logger.warning("Completed with %d tolerated warning(s):" % len(self.warnings))
            for warning in self.warnings:
                self.logger.warning("  %s" % warning)
        self._log_run("Setup complete")
        self.logger.info("A reboot is required to apply the new kernel arguments.")
        self.logger.info(
            "After rebooting, closing the lid will suspend, then hibernate after: %s"
            % c_(self["hibernate_delay"], "green", bold=True)
        )

    @contextmanager
    def _lock(self):
        """Holds an exclusive advisory lock on lock_file for the duration of the run."""
        lock_path = self._get_host_path(self["lock_file"])
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        with open(lock_path, "w") as lock_file:
            try:
                flock(lock_file, LOCK_EX | LOCK_NB)
            except BlockingIOError as e:
                raise ConcurrentRunError("Another hibernator run holds the lock: %s" % lock_path) from e
            self.logger.debug("Acquired lock: %s" % lock_path)
            try:
                yield
            finally:
                flock(lock_file, LOCK_UN)
                self.logger.debug("Released lock: %s" % lock_path)

    def check_stage_requirements(self, stage: str) -> None:
        """Ensures every parameter the stage depends on has been set."""
        if missing := [param for param in STAGE_REQUIREMENTS[stage] if not self.get(param)]:
            raise ValidationError("[%s] Missing stage requirements: %s" % (stage, ", ".join(missing)))

    def run_stage(self, stage: str) -> None:
        """Runs all functions imported under the stage hook."""
        self._log_run(f"Stage: {stage}")
        for function in self["imports"].get(stage, []):
            self.run_func(function)

    def run_func(self, function):
        """Runs an imported function, returning its output."""
        self.logger.log(self["_stage_log_level"], "Running function: %s" % c_(function.__name__, "blue", bold=True))
        if function_output := function(self):
            self.logger.debug("[%s] Function returned: %s" % (function.__name__, function_output))
        return function_output

    def run_checks(self) -> None:
        """Runs checks if defined in self['imports']['checks']."""
        self._log_run("Running checks")
        if checks := self["imports"].get("checks"):
            for check in checks:
                if check_output := self.run_func(check):
                    self.logger.info(check_output)
        else:
            self.logger.warning("No checks executed.")

    def _log_run(self, logline) -> None:
        self.logger.info(f"-- | {c_(logline, 'blue', bold=True)}")

    def __str__(self) -> str:
        return str(self.config_dict)
