from typing import Dict, Optional


class SchedulerError(Exception):
    """
    Base class for all errors raised by the service scheduler.
    """


class NotFoundError(SchedulerError):
    def __init__(self, name: str, message: Optional[str] = None):
        self.name: str = name
        super().__init__(message or f"No service found with name '{name}'")


class InstantiationError(SchedulerError):
    def __init__(self, name: str, message: Optional[str] = None):
        self.name: str = name
        super().__init__(message or f"Failed to instantiate service '{name}'")


class CadenceError(SchedulerError, ValueError):
    def __init__(self, expression: str, message: Optional[str] = None):
        self.expression: str = expression
        super().__init__(message or f"Invalid cadence expression: '{expression}'")


class LifecycleHookError(SchedulerError):
    """
    Raised when one of the service's own hooks (start, stop or run) fails.
    The original exception is available as `__cause__`.
    """

    def __init__(self, name: str, hook: str, message: Optional[str] = None):
        self.name: str = name
        self.hook: str = hook
        super().__init__(message or f"Hook '{hook}' of service '{name}' failed")


class BulkError(SchedulerError):
    """
    Aggregates the failures of a batch operation, keyed by service name.
    """

    def __init__(self, errors: Dict[str, Exception], operation: str = "operation"):
        self.errors: Dict[str, Exception] = dict(errors)
        details = "; ".join(f"{name}: {err}" for name, err in self.errors.items())
        super().__init__(f"{operation} failed for {len(self.errors)} service(s): {details}")
