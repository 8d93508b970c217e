import asyncio
import logging
from typing import Any, Dict, List, Optional, Type

import pytest
import pytest_asyncio

from service_scheduler.domain.service import BackgroundService
from service_scheduler.errors import BulkError
from service_scheduler.factories.simple import SimpleServiceFactory
from service_scheduler.manager import ServiceManager


class MyFirstService(BackgroundService):
    def __init__(self, config: Any, logger: Any):
        super().__init__(config, logger)
        self.counter: int = -1
        self.started: bool = False
        self.stopped: bool = True

    @property
    def cadence(self) -> Optional[str]:
        return "* * * * * *"

    async def run(self) -> None:
        self.counter += 1

    async def start(self) -> None:
        self.counter = 0
        self.started = True
        self.stopped = False

    async def stop(self) -> None:
        self.started = False
        self.stopped = True


class MySecondService(BackgroundService):
    def __init__(self, config: Any, logger: Any):
        super().__init__(config, logger)
        self.counter: int = -1
        self.started: bool = False
        self.stopped: bool = True

    @property
    def cadence(self) -> Optional[str]:
        return "* * * * * *"

    def run(self) -> None:
        self.counter += 1

    def start(self) -> None:
        self.counter = 0
        self.started = True
        self.stopped = False

    def stop(self) -> None:
        self.started = False
        self.stopped = True


class MyThirdService(BackgroundService):
    """Runs once on start and never flips its own stopped flag back."""

    def __init__(self, config: Any, logger: Any):
        super().__init__(config, logger)
        self.counter: int = -1
        self.started: bool = False
        self.stopped: bool = True

    @property
    def cadence(self) -> Optional[str]:
        return None

    def run(self) -> None:
        self.counter += 1

    async def start(self) -> None:
        self.counter = 0
        self.started = True

    async def stop(self) -> None:
        self.stopped = True


class SlowService(BackgroundService):
    """Every run outlasts the one second cadence."""

    def __init__(self, config: Any, logger: Any):
        super().__init__(config, logger)
        self.in_flight: int = 0
        self.max_in_flight: int = 0
        self.completed: int = 0
        self.in_flight_at_stop: Optional[int] = None

    @property
    def cadence(self) -> Optional[str]:
        return "* * * * * *"

    async def run(self) -> None:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(1.5)
        self.in_flight -= 1
        self.completed += 1

    def stop(self) -> None:
        self.in_flight_at_stop = self.in_flight


class FailingRunService(BackgroundService):
    def __init__(self, config: Any, logger: Any):
        super().__init__(config, logger)
        self.attempts: int = 0

    @property
    def cadence(self) -> Optional[str]:
        return "* * * * * *"

    async def run(self) -> None:
        self.attempts += 1
        raise RuntimeError("boom")


class FailingStartService(BackgroundService):
    def __init__(self, config: Any, logger: Any):
        super().__init__(config, logger)
        self.runs: int = 0

    @property
    def cadence(self) -> Optional[str]:
        return "* * * * * *"

    def run(self) -> None:
        self.runs += 1

    def start(self) -> None:
        raise RuntimeError("cannot start")


class FailingStopService(MySecondService):
    def stop(self) -> None:
        super().stop()
        raise RuntimeError("cannot stop")


class BrokenConstructorService(MySecondService):
    def __init__(self, config: Any, logger: Any):
        raise RuntimeError("missing collaborator")


class BadCadenceService(MySecondService):
    @property
    def cadence(self) -> Optional[str]:
        return "every second please"


class CountingFactory(SimpleServiceFactory):
    def __init__(self):
        super().__init__()
        self.created: List[str] = []
        self.instances: List[BackgroundService] = []

    async def instantiate(self, service_class, context):
        # Suspend so concurrent start() calls interleave here
        await asyncio.sleep(0.05)
        instance = await super().instantiate(service_class, context)
        self.created.append(context["name"])
        self.instances.append(instance)
        return instance


@pytest.fixture(scope="function")
def config() -> Dict[str, Any]:
    return {"environment": "test"}


@pytest.fixture(scope="function")
def service_classes() -> Dict[str, Type[BackgroundService]]:
    return {
        "jobs.MyFirstService": MyFirstService,
        "jobs.MySecondService": MySecondService,
        "jobs.MyThirdService": MyThirdService,
    }


@pytest.fixture(scope="function")
def factory() -> CountingFactory:
    return CountingFactory()


async def _shutdown(manager: ServiceManager) -> None:
    try:
        await manager.stop_all()
    except BulkError:
        pass


@pytest_asyncio.fixture(scope="function")
async def manager(factory: CountingFactory, service_classes, config):
    manager = ServiceManager(factory, service_classes, config, logging.getLogger("tests"))
    yield manager
    await _shutdown(manager)


@pytest_asyncio.fixture(scope="function")
async def error_manager(factory: CountingFactory, config):
    classes = {
        "jobs.SlowService": SlowService,
        "jobs.FailingRunService": FailingRunService,
        "jobs.FailingStartService": FailingStartService,
        "jobs.FailingStopService": FailingStopService,
        "jobs.BrokenConstructorService": BrokenConstructorService,
        "jobs.BadCadenceService": BadCadenceService,
        "jobs.MySecondService": MySecondService,
    }
    manager = ServiceManager(factory, classes, config)
    yield manager
    await _shutdown(manager)
