from .exceptions import (
    AllocationError,
    BestEffortWarning,
    BootConfigError,
    ConcurrentRunError,
    PolicyCompileError,
    PrivilegeError,
    ResolutionError,
    ValidationError,
)
from .hibernate_enabler import HibernateEnabler

__all__ = [
    "HibernateEnabler",
    "AllocationError",
    "BestEffortWarning",
    "BootConfigError",
    "ConcurrentRunError",
    "PolicyCompileError",
    "PrivilegeError",
    "ResolutionError",
    "ValidationError",
]
