from abc import ABC, abstractmethod
from typing import Any, Awaitable, Optional, Union


class BackgroundService(ABC):
    """
    Base class for scheduled background services.

    A background service is created by the ServiceManager when its name is
    started. `start` is called once, then `run` is called on every tick of the
    service's cadence. A service whose cadence is `None` is run once, right
    after `start`, and then stays active without further ticks. `stop` is called
    when the manager deactivates the service.

    Each hook may be a plain method or a coroutine function.
    """

    def __init__(self, config: Any = None, logger: Any = None):
        # The global application configuration that the service can reference
        self.config: Any = config
        self.logger: Any = logger
        # Assigned by the factory from the instantiation context
        self.name: Optional[str] = None

    @property
    @abstractmethod
    def cadence(self) -> Optional[str]:
        """
        The cadence expression the service is scheduled with, or `None` to run once.
        """
        pass

    @abstractmethod
    def run(self) -> Union[Awaitable[None], None]:
        pass

    def start(self) -> Union[Awaitable[None], None]:
        pass

    def stop(self) -> Union[Awaitable[None], None]:
        pass
