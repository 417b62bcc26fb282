from os import geteuid
from pathlib import Path
from subprocess import CompletedProcess, TimeoutExpired, run
from typing import Union

from zenlib.util import colorize as c_

from .exceptions import BestEffortWarning

__version__ = "1.2.0"
__author__ = "hibernator contributors"


def get_subpath(path: Path, subpath: Union[Path, str]) -> Path:
    """Returns the subpath of a path."""
    if not isinstance(subpath, Path):
        subpath = Path(subpath)

    if subpath.is_relative_to(path):
        return subpath

    if subpath.is_absolute():
        subpath = subpath.relative_to("/")
    return path / subpath


class HostHelpers:
    """Mixin class for the HibernateEnabler class.
    Everything which touches the host goes through these methods."""

    def _get_host_path(self, path: Union[Path, str]) -> Path:
        """Returns the path under the configured sysroot."""
        return get_subpath(self.sysroot, path)

    def _read(self, file_name: Union[Path, str]) -> str:
        """Reads a host file, returns an empty string if it does not exist."""
        file_path = self._get_host_path(file_name)
        if not file_path.is_file():
            self.logger.debug("File does not exist: %s" % file_path)
            return ""
        return file_path.read_text()

    def _write(self, file_name: Union[Path, str], contents: Union[list[str], str], append=False) -> bool:
        """
        Writes a host file, creating parent directories if needed.
        Returns False without touching the file if the result would not change it.
        When append is set, contents are added to the end of the file, on a new line.
        """
        file_path = self._get_host_path(file_name)

        if isinstance(contents, list):
            contents = "\n".join(contents) + "\n"

        current = file_path.read_text() if file_path.is_file() else None
        if append and current:
            if not current.endswith("\n"):
                contents = "\n" + contents
            contents = current + contents

        if current == contents:
            self.logger.debug("[%s] Contents unchanged, skipping write." % file_path)
            return False

        if not file_path.parent.is_dir():
            self.logger.debug("Parent directory for '%s' does not exist: %s" % (file_path.name, file_path.parent))
            file_path.parent.mkdir(parents=True)

        self.logger.debug("[%s] Writing contents:\n%s" % (file_path, contents))
        file_path.write_text(contents)
        self.logger.info("Wrote file: %s" % c_(file_path, "green", bright=True))
        return True

    def _is_privileged(self) -> bool:
        return geteuid() == 0

    def _run(self, args: list[str], timeout=None, fail_silent=False, fail_hard=True) -> CompletedProcess:
        """Runs a command, returns the CompletedProcess object on success.
        If a timeout is set, the command will fail hard if it times out.
        If fail_silent is set, non-zero return codes will not log stderr/stdout.
        If fail_hard is set, non-zero return codes will raise a RuntimeError.
        """

        def print_err(ret) -> None:
            if args := ret.args:
                if isinstance(args, tuple):
                    args = args[0]  # When there's a timeout, args is a (args, timeout) tuple
                self.logger.error("Failed command: %s" % c_(" ".join(args), "red", bright=True))
            if stdout := ret.stdout:
                self.logger.error("Command output:\n%s" % stdout.decode())
            if stderr := ret.stderr:
                self.logger.error("Command error:\n%s" % stderr.decode())

        timeout = timeout or self.timeout
        cmd_args = [str(arg) for arg in args]
        self.logger.debug("Running command: %s" % " ".join(cmd_args))
        try:
            cmd = run(cmd_args, capture_output=True, timeout=timeout)
        except TimeoutExpired as e:
            print_err(e)
            raise RuntimeError("[%ds] Command timed out: %s" % (timeout, cmd_args)) from e
        except FileNotFoundError as e:
            raise RuntimeError("Command not found: %s" % cmd_args[0]) from e

        if cmd.returncode != 0:
            if not fail_silent:
                print_err(cmd)
            if fail_hard:
                raise RuntimeError("Failed to run command: %s" % " ".join(cmd.args))

        return cmd

    def _warn(self, message: str) -> None:
        """Logs and records a tolerated failure."""
        self.logger.warning(c_(message, "yellow"))
        self.warnings.append(BestEffortWarning(message))

    def _try_run(self, args: list[str], message: str) -> bool:
        """Runs a command whose failure is tolerated.
        Returns True on success, otherwise records a BestEffortWarning with the message."""
        cmd = self._run(args, fail_silent=True, fail_hard=False)
        if cmd.returncode == 0:
            return True
        if stderr := cmd.stderr:
            self.logger.debug("[%s] Command error: %s" % (args[0], stderr.decode().strip()))
        self._warn(message)
        return False
