import asyncio
import logging
from typing import Optional

from service_scheduler.domain.service import BackgroundService
from service_scheduler.factories.simple import SimpleServiceFactory
from service_scheduler.manager import ServiceManager


class HeartbeatService(BackgroundService):
    @property
    def cadence(self) -> Optional[str]:
        return "*/2 * * * * *"

    async def run(self) -> None:
        self.logger.info("%s: heartbeat (env=%s)", self.name, self.config["environment"])


class CacheWarmupService(BackgroundService):
    @property
    def cadence(self) -> Optional[str]:
        return None

    def run(self) -> None:
        self.logger.info("%s: warming caches once", self.name)


async def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    classes = {
        "jobs.HeartbeatService": HeartbeatService,
        "jobs.CacheWarmupService": CacheWarmupService,
    }
    async with ServiceManager(SimpleServiceFactory(), classes, {"environment": "demo"}) as manager:
        await manager.start_all()
        await asyncio.sleep(7)

if __name__ == "__main__":
    asyncio.run(main())
