__author__ = "hibernator contributors"
__version__ = "1.2.0"

from collections import UserDict
from importlib import import_module
from pathlib import Path
from queue import Queue
from tomllib import TOMLDecodeError, load
from typing import Callable

from zenlib.logging import loggify
from zenlib.types import NoDupFlatList
from zenlib.util import colorize, handle_plural, pretty_print

# Types a custom parameter may be declared with, and the value it starts with
PARAMETER_DEFAULTS = {"list": list, "dict": dict, "bool": bool, "int": int, "str": str, "Path": Path}


@loggify
class HibernateConfigDict(UserDict):
    """
    Config for a hibernator run.

    Setting a list parameter appends to it, setting a dict parameter updates it.
    Modules are loaded from .toml files next to their python module, and may declare:
        modules: other modules to load first
        imports: functions to run, by stage name
        custom_parameters: names and types of the parameters the module uses
    Any other key sets a parameter value.

    hibernator.base.base is loaded by default, NO_BASE loads hibernator.base.core instead.
    Values set before their type is declared are queued, and set once the declaring module loads.
    """

    builtin_parameters = {
        "modules": NoDupFlatList,  # Names of loaded modules
        "imports": dict,  # Functions imported under the stage they run in
        "validated": bool,  # Set once all stages have run, the config is read only afterwards
        "custom_parameters": dict,  # Parameter types declared by modules
        "_processing": dict,  # Queued values for parameters without a declared type
    }

    def __init__(self, NO_BASE=False, *args, **kwargs):
        super().__init__(*args, **kwargs)
        for parameter, default_type in self.builtin_parameters.items():
            if default_type == NoDupFlatList:
                self.data[parameter] = default_type(no_warn=True, _log_bump=5, logger=self.logger)
            else:
                self.data[parameter] = default_type()
        self["modules"] = "hibernator.base.core" if NO_BASE else "hibernator.base.base"

    def import_args(self, args: dict, quiet=False) -> None:
        """Sets parameters from an argument dict, modules may be comma separated."""
        log_level = 10 if quiet else 20
        for arg, value in args.items():
            self.logger.log(log_level, f"[{colorize(arg, 'blue')}] Setting from arguments: {colorize(value, 'green')}")
            if arg == "modules":
                for module in value.split(","):
                    self[arg] = module
            else:
                self[arg] = value

    def __setitem__(self, key: str, value) -> None:
        if self["validated"]:
            return self.logger.error("[%s] Config is validated, refusing to set value: %s" % (key, colorize(value, "red")))

        if key in self.builtin_parameters or key in self["custom_parameters"]:
            return self.handle_parameter(key, value)

        if key == "logger":
            return
        self.logger.debug("[%s] Type is not known yet, queueing value: %s" % (key, value))
        self["_processing"].setdefault(key, Queue()).put(value)

    def handle_parameter(self, key: str, value) -> None:
        """Sets a registered parameter, using its _process_<key> method where one exists.
        Lists are appended to, dicts are updated, anything else is cast to the declared type."""
        expected_type = self.builtin_parameters.get(key) or self["custom_parameters"].get(key)
        if expected_type is None:
            raise KeyError("Parameter not registered: %s" % key)

        if processor := getattr(self, f"_process_{key}", None):
            self.logger.log(5, "[%s] Using setter: %s" % (key, processor.__name__))
            return processor(value)

        if expected_type in (list, NoDupFlatList):
            self.logger.log(5, "[%s] Appending: %s" % (key, value))
            return self[key].append(value)

        if expected_type is dict:
            self.logger.log(5, "[%s] Updating with: %s" % (key, value))
            return self[key].update(value)

        self.logger.debug("[%s] Setting value: %s" % (key, value))
        self.data[key] = expected_type(value)

    @handle_plural
    def _process_custom_parameters(self, parameter_name: str, parameter_type: str) -> None:
        """Registers a parameter type, setting the parameter to the empty value of that type."""
        if parameter_type not in PARAMETER_DEFAULTS:
            raise ValueError("[%s] Unsupported parameter type: %s" % (parameter_name, parameter_type))

        parameter_type = PARAMETER_DEFAULTS[parameter_type]
        self["custom_parameters"][parameter_name] = parameter_type
        self.data[parameter_name] = parameter_type()
        self.logger.debug("Registered custom parameter '%s' with type: %s" % (parameter_name, parameter_type.__name__))

    def _process_unprocessed(self, parameter_name: str) -> None:
        """Sets values which were queued before the parameter type was known."""
        if value_queue := self["_processing"].pop(parameter_name, None):
            while not value_queue.empty():
                value = value_queue.get()
                self.logger.debug("[%s] Processing queued value: %s" % (parameter_name, value))
                self[parameter_name] = value

    @handle_plural
    def _process_imports(self, stage: str, import_value: dict) -> None:
        """Imports module functions into the stage they run in."""
        for module_name, function_names in import_value.items():
            self.logger.debug("[%s]<%s> Importing module functions: %s" % (module_name, stage, function_names))
            module = import_module(module_name)
            functions: list[Callable] = [getattr(module, name) for name in function_names]
            if not functions:
                self.logger.warning("[%s] No functions listed for stage: %s" % (module_name, stage))
                continue

            if stage not in self["imports"]:
                self["imports"][stage] = NoDupFlatList(_log_bump=10, logger=self.logger)
            self["imports"][stage] += functions
            self.logger.debug("[%s] Updated stage functions: %s" % (stage, functions))

    @handle_plural
    def _process_modules(self, module: str) -> None:
        """Loads a module config: its parameter types, then its imports, then its values."""
        if module in self["modules"]:
            return self.logger.debug("Module '%s' already loaded" % module)

        self.logger.info("Processing module: %s" % colorize(module, bold=True))
        module_path = Path(__file__).parent.parent / (module.replace(".", "/") + ".toml")
        if not module_path.exists():
            raise FileNotFoundError("Unable to locate module: %s" % module)

        with open(module_path, "rb") as module_file:
            try:
                module_config = load(module_file)
            except TOMLDecodeError as e:
                raise ValueError("Unable to load module config: %s" % module) from e

        custom_parameters = module_config.pop("custom_parameters", {})
        if custom_parameters:
            self["custom_parameters"] = custom_parameters
        if imports := module_config.pop("imports", None):
            self["imports"] = imports

        for name, value in module_config.items():  # In the order they are defined
            self.logger.debug("[%s] (%s) Setting value: %s" % (module, name, value))
            self[name] = value

        for custom_parameter in custom_parameters:
            self._process_unprocessed(custom_parameter)

        # Only marked as loaded once done, modules which depend on each other are loaded once
        self["modules"].append(module)

    def validate(self) -> None:
        """Reports values for parameters no module declared, then makes the config read only."""
        if self["_processing"]:
            self.logger.critical(
                "Unprocessed config values: %s" % colorize(", ".join(self["_processing"].keys()), "red", bold=True)
            )
        self["validated"] = True

    def __str__(self) -> str:
        return pretty_print(self.data)
