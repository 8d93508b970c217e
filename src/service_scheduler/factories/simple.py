import inspect
import logging
from typing import Any, Callable, Dict, List, Type

from service_scheduler.domain.service import BackgroundService
from service_scheduler.errors import InstantiationError
from service_scheduler.factories.protocol import InstanceFactory

logger = logging.getLogger(__name__)

Initializer = Callable[[BackgroundService, Dict[str, Any]], Any]


class SimpleServiceFactory(InstanceFactory):
    """
    Factory that constructs services with `service_class(config, logger)`,
    assigns the name from the context and then applies any registered
    initializers (for attaching extra collaborators such as data store handles).
    """
    def __init__(self):
        self._initializers: List[Initializer] = []

    def register_initializer(self, initializer: Initializer) -> None:
        """
        Register a callable applied to every new instance after construction.

        Args:
            initializer (Initializer): Called as `initializer(instance, context)`,
                may be a coroutine function.
        """
        if initializer in self._initializers:
            raise ValueError(f"Initializer {initializer!r} is already registered")
        self._initializers.append(initializer)

    async def instantiate(self, service_class: Type[BackgroundService], context: Dict[str, Any]) -> BackgroundService:
        name = context.get("name")
        if not name:
            raise InstantiationError(str(name), "Instantiation context is missing the service name")
        if not (inspect.isclass(service_class) and issubclass(service_class, BackgroundService)):
            raise InstantiationError(name, f"'{service_class!r}' is not a BackgroundService class")

        try:
            instance = service_class(context.get("config"), context.get("logger"))
            instance.name = name
            for initializer in self._initializers:
                result = initializer(instance, context)
                if inspect.isawaitable(result):
                    await result
        except Exception as e:
            raise InstantiationError(name, f"Failed to instantiate service '{name}': {e}") from e

        logger.debug("Instantiated service %s as %s", name, service_class.__name__)
        return instance
