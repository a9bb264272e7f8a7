#!/usr/bin/env python3
"""
Lead Crawler CLI
================
Collects contact leads for a list of websites: each site's landing page is
read, then the investigator follows contact, bio-link and profile links
until email / phone / handle / registry id are filled or the depth runs out.

All configuration flows through ``LeadRunConfig``; relays, delays and
timeouts come from the selected mode profile plus ``SCRAPER_*`` /
``LEADCRAWLER_*`` environment overrides.

Run with: python -m leadcrawler https://example.com --require phone
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

# Load .env (credentials, relay settings) before anything reads the environment
_env_path = Path(__file__).resolve().parent.parent / ".env"
if _env_path.exists():
    load_dotenv(_env_path)
else:
    load_dotenv()

from .auth import resolve_credentials
from .events import LoggingObserver
from .extractors import InvestigatingExtractor, WebsiteContactExtractor, WebsiteListSource, read_url_file
from .manager import JobManager
from .models import KNOWN_FIELDS, MAX_TARGET, JobConfig, JobOutcome
from .providers import default_providers
from .run_config import LeadRunConfig, mode_names
from .session import PlaywrightSessionFactory
from .storage import JsonCsvResultStore

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s | %(levelname)s | %(message)s',
    datefmt='%H:%M:%S'
)
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="leadcrawler",
        description="Lead Crawler - contact leads from websites via rotating relays",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m leadcrawler https://example.com
  python -m leadcrawler --input sites.txt --target 50 --require phone
  python -m leadcrawler https://example.com --no-relay --headed --max-depth 2
        """
    )
    parser.add_argument('urls', nargs='*', help='Seed website URLs')
    parser.add_argument('--input', type=str, metavar='FILE', help='File with one URL per line')
    parser.add_argument('--target', type=int, help='Leads to collect (default: number of seeds)')
    parser.add_argument(
        '--require', action='append', default=[], metavar='FIELD',
        help=f"Required field, repeatable or comma separated ({', '.join(sorted(KNOWN_FIELDS))})",
    )
    parser.add_argument('--mode', choices=mode_names(), default='default', help='Delay/timeout profile')
    parser.add_argument('--no-relay', action='store_true', help='Connect directly, no relay pool')
    parser.add_argument('--no-investigate', action='store_true', help='Skip deep contact investigation')
    parser.add_argument('--max-depth', type=int, help='Investigation depth (default: 5)')
    parser.add_argument('--margin', type=float, help='Over-collection factor (default: 1.2)')
    parser.add_argument('--results-dir', type=str, help='Where JSON/CSV results are written')
    parser.add_argument('--screenshots', action='store_true', help='Capture screenshots on errors')
    parser.add_argument('--headless', dest='headless', action='store_true', default=True,
                        help='Run the browser headless (default)')
    parser.add_argument('--headed', dest='headless', action='store_false',
                        help='Show the browser window')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    return parser


def _required_fields(values) -> list:
    fields = []
    for value in values:
        for name in value.split(','):
            name = name.strip()
            if name and name not in fields:
                fields.append(name)
    return fields


def print_summary(outcome: JobOutcome):
    progress = outcome.progress
    print("\n" + "=" * 65)
    print(f"JOB {outcome.state.value.upper()}")
    print("=" * 65)
    print(f"  Leads:               {progress.get('success_count', 0)}/{progress.get('total', 0)}")
    print(f"  Skipped:             {progress.get('skipped_count', 0)} (missing required fields)")
    print(f"  Errors:              {progress.get('error_count', 0)}")
    if progress.get('retried_count'):
        print(f"  Retried:             {progress.get('retried_count', 0)}")
    if progress.get('rotations'):
        print(f"  Relay rotations:     {progress.get('rotations', 0)}")
    print(f"  Sites investigated:  {progress.get('sites_investigated', 0)}")
    if outcome.location:
        print(f"  Results:             {outcome.location}")
    if outcome.error:
        print(f"  Error:               {outcome.error}")
    print("=" * 65)


async def _run_job(manager: JobManager, job: JobConfig, source, extractor, cfg) -> JobOutcome:
    job_id = manager.submit(job, source, extractor, run_config=cfg)
    creds = resolve_credentials()
    if creds is not None:
        manager.supply_credentials(job_id, creds)
    try:
        return await manager.wait(job_id)
    finally:
        await manager.shutdown()


def run_cli_with_args(argv=None) -> int:
    """Parse argv, build the job, run it to a terminal state."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    urls = list(args.urls)
    if args.input:
        urls.extend(read_url_file(args.input))
    source = WebsiteListSource(urls)
    if not len(source):
        parser.error("no valid seed URLs (pass URLs or --input FILE)")

    target = args.target or min(len(source), MAX_TARGET)
    try:
        job = JobConfig(
            target=target,
            required_fields=_required_fields(args.require),
            use_relay=not args.no_relay,
            investigate=not args.no_investigate,
            mode=args.mode,
        )
    except ValueError as e:
        parser.error(str(e))

    cfg = LeadRunConfig.from_cli_args(args)
    cfg.log_summary(f"{len(source)} seeds, target {job.target}")

    extractor = InvestigatingExtractor(
        WebsiteContactExtractor(nav_timeout_s=cfg.navigation_timeout),
        cfg,
        enabled=job.investigate,
    )
    manager = JobManager(
        PlaywrightSessionFactory(headless=cfg.headless, user_agent=cfg.user_agent),
        default_providers(cfg.relay_country, cfg.provider_timeout_s, cfg.paid_relays),
        JsonCsvResultStore(cfg.results_dir),
        max_concurrent=cfg.max_concurrent_jobs,
        observers=[LoggingObserver()],
    )

    try:
        outcome = asyncio.run(_run_job(manager, job, source, extractor, cfg))
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 130
    print_summary(outcome)
    return 0 if outcome.success else 1


if __name__ == '__main__':
    sys.exit(run_cli_with_args())
