from typing import Any, Dict, Protocol, Type

from service_scheduler.domain.service import BackgroundService


class InstanceFactory(Protocol):
    """
    Protocol class for the collaborator that builds service instances.
    """

    async def instantiate(self, service_class: Type[BackgroundService], context: Dict[str, Any]) -> BackgroundService:
        """
        Build a fully initialized instance of `service_class`.

        Args:
            service_class (Type[BackgroundService]): The class to instantiate.
            context (Dict[str, Any]): Instantiation context. Always holds the
                qualified `name` of the service, plus the `config` and `logger`
                the manager was given.

        Raises:
            InstantiationError: If construction or injection fails.
        """
        ...
