"""Daily distribution scan scheduler."""
import logging
import asyncio
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from tierscan.core.config import settings
from tierscan.core.resources import Resources
from tierscan.services.scan_service import ScanService

logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class ScanScheduler:
    """Runs one distribution scan per day in the low-traffic window."""

    def __init__(self, resources: Resources):
        logger.info("Initializing ScanScheduler...")
        self.resources = resources
        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self.service = ScanService(resources.session_factory, resources.redis, resources.settings)
        logger.info("ScanScheduler initialized")

    async def run_daily_scan(self):
        """Resume a paused scan if there is one, otherwise start fresh."""
        try:
            result = await self.service.start_scan(resume=True)
        except Exception as e:
            logger.error(f"Error running scheduled scan: {e}", exc_info=True)
            return

        if result.already_running:
            logger.info("Skipping scheduled scan: another scan holds the lock")
        elif result.success:
            logger.info(
                f"Scheduled scan completed: {result.total_accounts:,} accounts "
                f"in {result.duration_seconds:.1f}s"
            )
        elif result.paused:
            logger.warning(f"Scheduled scan paused: {result.error}")
        else:
            logger.error(f"Scheduled scan failed: {result.error}")

    def start(self):
        """Register the daily job and start the scheduler."""
        hour = self.resources.settings.scan_cron_hour_utc
        logger.info("="*60)
        logger.info("Starting scan scheduler...")
        logger.info(f"Log level: {settings.log_level}")
        logger.info(f"Daily scan at {hour:02d}:00 UTC")
        logger.info("="*60)

        self.scheduler.add_job(
            self.run_daily_scan,
            trigger=CronTrigger(hour=hour, minute=0, timezone="UTC"),
            id="daily_distribution_scan",
            replace_existing=True,
            max_instances=1,
            coalesce=True
        )

        self.scheduler.start()
        logger.info("Scheduler started successfully")

    async def run(self):
        """Run scheduler indefinitely."""
        self.start()

        try:
            while True:
                await asyncio.sleep(1)
        except (KeyboardInterrupt, SystemExit, asyncio.CancelledError):
            logger.info("Shutting down scheduler...")
            self.scheduler.shutdown(wait=False)
            raise


async def main():
    """Main entry point for scheduler."""
    async with Resources(settings) as resources:
        scheduler = ScanScheduler(resources)
        await scheduler.run()


if __name__ == "__main__":
    asyncio.run(main())
