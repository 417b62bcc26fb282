class ValidationError(Exception):
    pass


class PrivilegeError(Exception):
    pass


class ConcurrentRunError(Exception):
    pass


class AllocationError(Exception):
    pass


class PolicyCompileError(Exception):
    pass


class ResolutionError(Exception):
    pass


class BootConfigError(Exception):
    pass


class BestEffortWarning(UserWarning):
    """A tolerated failure, logged and collected but never raised."""
