"""
Background Service Scheduler

This module runs named, independently scheduled recurring services inside a
long-lived asyncio process.

Core Concepts:

Service:
    A BackgroundService is a unit of recurring work. It exposes an optional
    cadence expression and a `run` hook invoked once per tick, plus `start`
    and `stop` hooks invoked when it is activated and deactivated.

Cadence:
    A six-field, seconds-resolution cron expression describing when `run`
    fires. A service without a cadence runs once, right after it starts.

ServiceManager:
    Owns the registry of service classes keyed by qualified name, the table of
    active instances and one timer per active service.

Relationships:
    - A registered name has at most one active instance at a time.
    - Restarting a name always produces a fresh instance.
"""

from .cadence import Cadence, parse_cadence
from .domain import ActiveEntry, BackgroundService, EntryState
from .errors import (
    BulkError,
    CadenceError,
    InstantiationError,
    LifecycleHookError,
    NotFoundError,
    SchedulerError,
)
from .factories import InstanceFactory, SimpleServiceFactory
from .manager import ServiceManager
from .settings import SchedulerSettings

__all__ = [
    "ActiveEntry",
    "BackgroundService",
    "BulkError",
    "Cadence",
    "CadenceError",
    "EntryState",
    "InstanceFactory",
    "InstantiationError",
    "LifecycleHookError",
    "NotFoundError",
    "SchedulerError",
    "SchedulerSettings",
    "ServiceManager",
    "SimpleServiceFactory",
    "parse_cadence",
]
