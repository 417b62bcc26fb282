__version__ = "0.2.0"

from hibernator.exceptions import ValidationError
from zenlib.util import contains


@contains("check_in_file", "Skipping in file check")
def check_in_file(self):
    """Runs all 'check_in_file' checks."""
    for file, lines in self["check_in_file"].items():
        _check_in_file(self, file, lines)
    return "All 'check_in_file' checks passed"


def _check_in_file(self, file, lines):
    """Checks that all lines are in the host file."""
    file_path = self._get_host_path(file)
    if not file_path.is_file():
        raise ValidationError("File '%s' does not exist" % file_path)

    file_lines = file_path.read_text().splitlines()
    for check_line in lines:
        if check_line not in file_lines:
            raise ValidationError("Failed to find line '%s' in file '%s'" % (check_line, file_path))
