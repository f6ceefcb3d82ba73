"""
Command-line interface for PatchScout.

Usage:
    python -m patchscout https://msrc.microsoft.com/update-guide/vulnerability/CVE-2024-21412
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from patchscout.config import get_settings
from patchscout.errors import BatchInputError
from patchscout.models import AdvisoryStatus, BatchSummary


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="patchscout",
        description="Extract vendor remediation data (patch ids, download links) from CVE reference URLs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # One advisory
  python -m patchscout https://github.com/advisories/GHSA-xxxx-xxxx-xxxx

  # Several, full JSON output
  python -m patchscout URL1 URL2 URL3 --json

  # Render client-side pages with a headless browser (requires playwright)
  python -m patchscout https://msrc.microsoft.com/update-guide/vulnerability/CVE-2024-21412 --browser

Environment:
  PATCHSCOUT_* variables override every setting (see patchscout.config).
""",
    )

    parser.add_argument(
        "urls",
        nargs="+",
        help="Reference URLs (a single argument may hold several separated by '|')",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the full batch summary as JSON",
    )
    parser.add_argument(
        "--browser",
        action="store_true",
        help="Enable headless-browser rendering (requires playwright)",
    )
    parser.add_argument(
        "--no-api",
        action="store_true",
        help="Do not call vendor data APIs (GitHub, MSRC)",
    )
    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=None,
        help="Max hosts processed concurrently (default: PATCHSCOUT_MAX_WORKERS or 4)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Batch timeout in seconds (default: none)",
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Debug logging",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Only warnings and errors",
    )

    return parser.parse_args(argv)


def configure_logging(args: argparse.Namespace) -> None:
    level = logging.INFO
    if args.verbose:
        level = logging.DEBUG
    elif args.quiet:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def build_settings(args: argparse.Namespace):
    """Settings from the environment, overridden by command line flags."""
    overrides = {}
    if args.browser:
        overrides["use_browser"] = True
    if args.no_api:
        overrides["use_vendor_apis"] = False
    if args.workers is not None:
        overrides["max_workers"] = max(1, args.workers)
    if args.timeout is not None:
        overrides["batch_timeout_s"] = args.timeout
    return get_settings().model_copy(update=overrides)


def collect_urls(args: argparse.Namespace) -> List[str]:
    urls: List[str] = []
    for arg in args.urls:
        urls.extend(u.strip() for u in arg.split("|") if u.strip())
    return urls


def print_summary(summary: BatchSummary) -> None:
    print()
    print("=" * 50)
    print("Run Summary")
    print("=" * 50)
    for url, result in summary.results.items():
        print(f"[{result.status.value}] {url}")
        if result.record is not None and result.status == AdvisoryStatus.SUCCESS:
            record = result.record
            print(f"  Vendor:     {record.vendor_used} ({record.confidence.value} confidence)")
            if record.patch_ids:
                print(f"  Patches:    {', '.join(record.patch_ids)}")
            if record.fix_version:
                print(f"  Fixed in:   {record.fix_version}")
            if record.affected_versions:
                print(f"  Affected:   {record.affected_versions}")
            for link in record.download_links:
                marker = " (unverified)" if link in record.synthesized_links else ""
                print(f"  Link:       {link}{marker}")
        else:
            print(f"  {result.diagnostic}")
    print()
    counts = ", ".join(f"{k}: {v}" for k, v in summary.counts.items())
    print(f"  {counts}")
    print(f"  Pipeline runs: {summary.pipeline_runs}")
    if summary.timed_out:
        print("  Batch timed out; unfinished URLs marked Failed")
    if summary.manual_review:
        print()
        print("Manual review needed:")
        for url in summary.manual_review:
            print(f"  {url}")


async def async_main(args: argparse.Namespace) -> int:
    """Async entry point."""
    from patchscout.orchestrator import run_batch

    settings = build_settings(args)
    urls = collect_urls(args)

    def progress(event) -> None:
        if not args.quiet and not args.json:
            print(f"  [{event.completed}/{event.total}] {event.status.value}: {event.url}", file=sys.stderr)

    try:
        summary = await run_batch(urls, settings=settings, progress=progress)

        if args.json:
            print(json.dumps(summary.to_dict(), indent=2))
        elif not args.quiet:
            print_summary(summary)
        return 0

    except BatchInputError as e:
        print(f"Invalid input: {e}", file=sys.stderr)
        return 2

    except KeyboardInterrupt:
        if not args.quiet:
            print("\nInterrupted by user")
        return 130

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    configure_logging(args)
    try:
        return asyncio.run(async_main(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
