"""Scan control API routes: status, manual trigger and cron trigger."""
from datetime import datetime, timezone
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
import logging

from tierscan.api.dependencies import get_scan_service, require_cron_secret, require_scan_api_key
from tierscan.services.scan_service import ScanService, ScanTicket
from tierscan.utils.time import is_optimal_scan_time, next_optimal_scan_time

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/scan", tags=["scan"])


async def run_claimed_scan(service: ScanService, ticket: ScanTicket, source: str) -> None:
    """Run a claimed scan after the response has been sent."""
    result = await service.run(ticket)
    if result.success:
        logger.info(
            f"[{source}] Scan completed: {result.total_accounts:,} accounts in {result.duration_seconds:.1f}s"
        )
    elif result.paused:
        logger.warning(f"[{source}] Scan paused: {result.error}")
    else:
        logger.error(f"[{source}] Scan failed: {result.error}")


@router.get("/status")
async def get_scan_status(service: ScanService = Depends(get_scan_service)):
    """Progress of the current or last scan."""
    report = await service.get_scan_status()
    return report.to_dict()


@router.post("/trigger", dependencies=[Depends(require_scan_api_key)])
async def trigger_scan(
    background_tasks: BackgroundTasks,
    resume: bool = False,
    service: ScanService = Depends(get_scan_service)
):
    """
    Start a scan in the background.

    With ``resume=true`` a paused scan continues from its checkpoint.
    Returns 409 if a scan is already running.
    """
    ticket = await service.begin(resume)
    if ticket is None:
        progress = await service.progress.get()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "error": "Scan already in progress",
                "code": "SCAN_IN_PROGRESS",
                "progress": progress.model_dump(mode="json"),
            }
        )

    background_tasks.add_task(run_claimed_scan, service, ticket, "API")
    logger.info(f"Scan started via API (resume={resume})")

    return {
        "message": "Scan resumed" if resume else "Scan started",
        "status": "running",
        "started_at": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/cron", dependencies=[Depends(require_cron_secret)])
async def cron_scan(
    background_tasks: BackgroundTasks,
    service: ScanService = Depends(get_scan_service)
):
    """
    Scheduled scan entry point for external cron services.

    Skips outside the low-traffic window. Resumes a paused scan when one
    exists, otherwise starts fresh.
    """
    now = datetime.now(timezone.utc)
    if not is_optimal_scan_time(now):
        return {
            "message": "Skipping scan - not optimal time (2-6 AM UTC)",
            "code": "SKIPPED_NOT_OPTIMAL_TIME",
            "current_utc_hour": now.hour,
            "next_optimal_time": next_optimal_scan_time(now).isoformat(),
        }

    ticket = await service.begin(resume=True)
    if ticket is None:
        return {
            "message": "Scan already in progress",
            "code": "SCAN_IN_PROGRESS",
        }

    background_tasks.add_task(run_claimed_scan, service, ticket, "Cron")
    logger.info("Scheduled scan started at optimal time")

    return {
        "message": "Scheduled scan started",
        "status": "running",
        "started_at": now.isoformat(),
        "is_optimal_time": True,
    }
