import asyncio
import inspect
import logging
from collections import defaultdict
from datetime import datetime
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Type, Union

from service_scheduler.cadence import Cadence, parse_cadence
from service_scheduler.domain.entry import ActiveEntry, EntryState
from service_scheduler.domain.service import BackgroundService
from service_scheduler.errors import (
    BulkError,
    CadenceError,
    InstantiationError,
    LifecycleHookError,
    NotFoundError,
    SchedulerError,
)
from service_scheduler.factories.protocol import InstanceFactory
from service_scheduler.settings import SchedulerSettings

ErrorObserver = Callable[[str, LifecycleHookError], Union[Awaitable[None], None]]


async def _maybe_await(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


class ServiceManager:
    """
    Manages the background services of an application: instantiates them,
    schedules them according to their cadence and shuts them down.

    Usage:

        manager = ServiceManager(SimpleServiceFactory(), {"jobs.Cleanup": CleanupService}, config, logger)
        await manager.start_all()
        ...
        await manager.stop_all()

    Individual services can be started and stopped with `start` and `stop`.
    Every active service owns one asyncio task that sleeps until the next fire
    time of its cadence, calls `run` and then computes the following fire time
    from the current time. A service is never ticked while its previous `run`
    is still in flight; overdue ticks are skipped.
    """

    def __init__(
        self,
        factory: InstanceFactory,
        classes: Mapping[str, Type[BackgroundService]],
        config: Any = None,
        logger: Optional[logging.Logger] = None,
        settings: Optional[SchedulerSettings] = None,
        on_error: Optional[ErrorObserver] = None,
    ):
        for name, service_class in (classes or {}).items():
            if not (inspect.isclass(service_class) and issubclass(service_class, BackgroundService)):
                raise ValueError(f"Class registered as '{name}' is not a BackgroundService")

        self.factory: InstanceFactory = factory
        self.classes: Mapping[str, Type[BackgroundService]] = MappingProxyType(dict(classes or {}))
        self.config: Any = config
        self.logger: logging.Logger = logger or logging.getLogger("service_scheduler")
        self.settings: SchedulerSettings = settings or SchedulerSettings()
        self.on_error: Optional[ErrorObserver] = on_error
        self._entries: Dict[str, ActiveEntry] = {}
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def __aenter__(self) -> "ServiceManager":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop_all()

    @property
    def active_services(self) -> List[str]:
        return list(self._entries.keys())

    def is_active(self, name: str) -> bool:
        return name in self._entries

    def get_service(self, name: str) -> Optional[BackgroundService]:
        """
        Returns the active service instance with the given name, or None if it
        is not currently started.
        """
        entry = self._entries.get(name)
        return entry.instance if entry else None

    def get_entry(self, name: str) -> Optional[ActiveEntry]:
        return self._entries.get(name)

    async def start_all(self):
        """
        Start every registered service in registry order. Failures do not stop
        the remaining services from being started; they are raised together as
        a BulkError at the end.
        """
        errors: Dict[str, Exception] = {}
        for name in list(self.classes.keys()):
            try:
                await self.start(name)
            except SchedulerError as e:
                errors[name] = e
        if errors:
            raise BulkError(errors, operation="start_all")

    async def start(self, name: str):
        """
        Start the service registered under `name`. Does nothing if the service
        is already active.

        Raises:
            NotFoundError: If no class is registered under `name`.
            InstantiationError: If the factory cannot build the service.
            CadenceError: If the service exposes an invalid cadence.
            LifecycleHookError: If the service's start() hook fails.
        """
        service_class = self.classes.get(name)
        if service_class is None:
            raise NotFoundError(name, f"No background service registered with name '{name}'")

        async with self._locks[name]:
            if name in self._entries:
                self.logger.debug("Service %s is already started", name)
                return

            self.logger.info("Starting service %s...", name)
            instance = await self._instantiate(name, service_class)
            try:
                cadence: Optional[Cadence] = parse_cadence(instance.cadence)
            except CadenceError:
                self.logger.error("Service %s has an invalid cadence", name)
                raise
            except Exception as e:
                raise LifecycleHookError(name, "cadence", f"Failed to read cadence of service '{name}': {e}") from e

            entry = ActiveEntry(name=name, instance=instance, cadence=cadence)
            entry.set_state(EntryState.STARTING)
            try:
                await _maybe_await(instance.start())
            except Exception as e:
                entry.set_state(EntryState.REMOVED)
                self.logger.error("Failed to start service %s: %s", name, e)
                raise LifecycleHookError(name, "start", f"Failed to start service '{name}': {e}") from e

            entry.timer = asyncio.create_task(self._schedule_loop(entry), name=f"service:{name}")
            entry.set_state(EntryState.ACTIVE)
            self._entries[name] = entry
            if cadence:
                self.logger.info("Service %s started with cadence '%s'", name, cadence.expression)
            else:
                self.logger.info("Service %s started for a single run", name)

    async def stop_all(self):
        """
        Stop every active service concurrently. Failures are raised together
        as a BulkError once every service has been processed.
        """
        names = list(self._entries.keys())
        results = await asyncio.gather(*(self.stop(name) for name in names), return_exceptions=True)
        errors: Dict[str, Exception] = {}
        for name, result in zip(names, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, Exception) and not isinstance(result, NotFoundError):
                errors[name] = result
        if errors:
            raise BulkError(errors, operation="stop_all")

    async def stop(self, name: str):
        """
        Stop the active service with the given name. An in-flight run() is
        allowed to finish before the service's stop() hook is called. The
        entry is removed even if stop() fails.

        Raises:
            NotFoundError: If the service is not active.
            LifecycleHookError: If the service's stop() hook fails.
        """
        # Locks exist only for registered names
        if name not in self.classes:
            raise NotFoundError(name, f"No active background service with name '{name}'")

        async with self._locks[name]:
            entry = self._entries.get(name)
            if entry is None:
                raise NotFoundError(name, f"No active background service with name '{name}'")

            self.logger.info("Stopping background service %s...", name)
            # No tick fires once the state has left ACTIVE
            entry.set_state(EntryState.STOPPING)
            await self._cancel_timer(entry)

            try:
                await _maybe_await(entry.instance.stop())
            except Exception as e:
                self.logger.error("Failed to stop service %s: %s", name, e)
                raise LifecycleHookError(name, "stop", f"Failed to stop service '{name}': {e}") from e
            finally:
                del self._entries[name]
                entry.set_state(EntryState.REMOVED)
            self.logger.info("Service %s stopped", name)

    async def _instantiate(self, name: str, service_class: Type[BackgroundService]) -> BackgroundService:
        context = {"name": name, "config": self.config, "logger": self.logger}
        try:
            instance = await _maybe_await(self.factory.instantiate(service_class, context))
        except InstantiationError:
            self.logger.error("Failed to instantiate service %s", name)
            raise
        except Exception as e:
            self.logger.error("Failed to instantiate service %s: %s", name, e)
            raise InstantiationError(name, f"Failed to instantiate service '{name}': {e}") from e
        if not isinstance(instance, BackgroundService):
            raise InstantiationError(name, f"Factory returned {type(instance).__name__} for service '{name}'")
        return instance

    async def _cancel_timer(self, entry: ActiveEntry):
        timer = entry.timer
        if timer:
            timer.cancel()
            await asyncio.gather(timer, return_exceptions=True)
        # The in-flight run is shielded from the timer cancellation; let it finish
        if entry.current_run and not entry.current_run.done():
            self.logger.debug("Waiting for in-flight run of %s to complete", entry.name)
            await asyncio.gather(entry.current_run, return_exceptions=True)
        entry.timer = None
        entry.current_run = None

    async def _schedule_loop(self, entry: ActiveEntry):
        """
        Timer of a single service: sleep until the next fire time, run, repeat.
        Services without a cadence are run once immediately.
        """
        tz = self.settings.tzinfo
        while True:
            if entry.cadence:
                try:
                    delay = entry.cadence.seconds_until_next(datetime.now(tz))
                except Exception as e:
                    self.logger.exception("Cannot compute next fire time of service %s: %s", entry.name, e)
                    error = LifecycleHookError(entry.name, "cadence", f"Service '{entry.name}' has no next fire time: {e}")
                    error.__cause__ = e
                    await self._notify_error(entry.name, error)
                    return
                await asyncio.sleep(delay)
            else:
                await asyncio.sleep(0)

            if not entry.is_active:
                return
            entry.current_run = asyncio.ensure_future(self._run_once(entry))
            await asyncio.shield(entry.current_run)
            entry.current_run = None

            if not entry.cadence:
                return

    async def _run_once(self, entry: ActiveEntry):
        name = entry.name
        service = entry.instance
        self.logger.debug("Running service %s", name)
        try:
            if inspect.iscoroutinefunction(service.run) or not self.settings.offload_sync_run:
                await _maybe_await(service.run())
            else:
                await _maybe_await(await asyncio.to_thread(service.run))
        except Exception as e:
            entry.record_run(failed=True)
            self.logger.exception("Error running service %s: %s", name, e)
            error = LifecycleHookError(name, "run", f"Service '{name}' failed to run: {e}")
            error.__cause__ = e
            await self._notify_error(name, error)
            return
        entry.record_run()

    async def _notify_error(self, name: str, error: LifecycleHookError):
        if self.on_error is None:
            return
        try:
            await _maybe_await(self.on_error(name, error))
        except Exception:
            self.logger.exception("Error observer failed for service %s", name)
