#!/usr/bin/env python3
"""
Distribution Scan Runner

Runs one full scan of the XRP Ledger account set in the foreground and
prints the resulting tier thresholds.

Usage:
    python scripts/run_scan.py

    Resume a paused scan from its checkpoint:
    python scripts/run_scan.py --resume
"""
import argparse
import asyncio
import logging
import sys

from tierscan.core.config import settings
from tierscan.core.resources import Resources
from tierscan.services.scan_service import ScanService
from tierscan.workers.scan_orchestrator import ScanResult


def print_result(result: ScanResult) -> None:
    print("\n" + "="*60)
    if result.success:
        print(f"✅ Scan complete: {result.total_accounts:,} funded accounts")
        print(f"   Duration: {result.duration_seconds:.1f}s")
        print("\nTier thresholds:")
        for threshold in result.thresholds:
            print(
                f"  {threshold.emoji} {threshold.name:<10} top {threshold.percentile:>5}%  "
                f"≥ {threshold.minimum_balance:,.6f} XRP"
            )
    elif result.already_running:
        print("⚠️  Scan already in progress, nothing started")
    elif result.paused:
        print(f"⏸️  Scan paused after {result.total_accounts:,} entries")
        print(f"   {result.error}")
        print("   Run again with --resume to continue")
    else:
        print(f"❌ Scan failed: {result.error}")
    print("="*60)


async def run(resume: bool) -> ScanResult:
    async with Resources(settings) as resources:
        service = ScanService(resources.session_factory, resources.redis, resources.settings)
        return await service.start_scan(resume=resume)


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Scan the XRP Ledger and recompute wealth tier thresholds",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument(
        "--resume",
        action="store_true",
        help="Continue a paused scan from its last checkpoint"
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    print("🚀 Starting distribution scan...")
    print(f"   Endpoints: {', '.join(settings.endpoint_list)}")
    result = asyncio.run(run(args.resume))
    print_result(result)

    if not result.success:
        sys.exit(1)


if __name__ == "__main__":
    main()
