"""Main entry point for the reporting engine"""

import argparse
import asyncio
from datetime import date
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

# Load environment variables FIRST, before any other imports
# Find the .env file in the project root
env_path = Path(__file__).parent.parent / '.env'
load_dotenv(dotenv_path=env_path)

from scrapledger.constants import GroupBy, TransactionKind, DEFAULT_CUSTOM_RANGE_DAYS
from scrapledger.demo.csv_data_loader import CsvDemoSource, DemoDataLoader
from scrapledger.demo.demo_config import get_demo_data_dir, is_demo_mode
from scrapledger.models.criteria import DateRange, FilterCriteria
from scrapledger.orchestrator.engine import ReportingEngine
from scrapledger.tools.export import suggest_filename
from scrapledger.utils.config_loader import DEFAULT_CONFIG_PATH, get_section, load_config
from scrapledger.utils.logging import get_logger

logger = get_logger(__name__)

REPORT_TYPES = ["summary", "daily", "weekly", "monthly", "custom"]


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Scrap ledger reporting engine")
    parser.add_argument("--report", choices=REPORT_TYPES, default="summary", help="Report to produce")
    parser.add_argument("--date", type=date.fromisoformat, default=None,
                        help="Report day (daily/weekly) or any day in the month (monthly), YYYY-MM-DD")
    parser.add_argument("--start", type=date.fromisoformat, default=None, help="Custom report start, YYYY-MM-DD")
    parser.add_argument("--end", type=date.fromisoformat, default=None, help="Custom report end, YYYY-MM-DD")
    parser.add_argument("--group-by", choices=[g.value for g in GroupBy], default=GroupBy.DAY.value,
                        help="Custom report grouping")
    parser.add_argument("--material", action="append", default=[], help="Restrict to material (repeatable)")
    parser.add_argument("--counterparty", action="append", default=[], help="Restrict to counterparty (repeatable)")
    parser.add_argument("--type", dest="types", action="append", default=[],
                        choices=[k.value for k in TransactionKind], help="Restrict to transaction kind")
    parser.add_argument("--data-dir", default=None, help="Directory holding purchases/sales/suppliers CSVs")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="YAML configuration file")
    parser.add_argument("--export", dest="export_path", default=None,
                        help="Write the report groups as CSV (directory or file path)")
    return parser.parse_args(argv)


async def run(args: argparse.Namespace):
    config = load_config(args.config)
    if is_demo_mode():
        logger.info(f"🎭 Demo mode active, using config version {config['version']}")
    loader = DemoDataLoader(args.data_dir or get_demo_data_dir())

    engine = ReportingEngine(
        CsvDemoSource(loader, TransactionKind.PURCHASE),
        CsvDemoSource(loader, TransactionKind.SALE),
        directory=loader.build_directory(),
        config=config
    )

    async with engine:
        await engine.wait_until_loaded(timeout=30)
        logger.info(f"Working set loaded: {len(engine.transactions)} transactions")

        if args.report == "summary":
            return engine.summary()

        day = args.date or date.today()
        if args.report == "daily":
            report = await engine.daily_report(day)
        elif args.report == "weekly":
            report = await engine.weekly_report(day)
        elif args.report == "monthly":
            report = await engine.monthly_report(day.year, day.month)
        else:
            window = DateRange.last_days(
                get_section(config, 'reports', 'custom_range_days', DEFAULT_CUSTOM_RANGE_DAYS),
                today=args.end
            )
            criteria = FilterCriteria.for_range(
                args.start or window.start,
                window.end,
                group_by=GroupBy(args.group_by),
                materials=set(args.material),
                counterparties=set(args.counterparty),
                transaction_types={TransactionKind(t) for t in args.types}
            )
            report = await engine.generate_report(criteria)

        if args.export_path and report is not None:
            target = Path(args.export_path)
            if target.is_dir():
                target = target / suggest_filename(report.report_type, report.end)
            target.write_text(engine.export(report))
            logger.info(f"Report exported to {target}")

        return report


def main(argv: Optional[List[str]] = None):
    """Main entry point"""
    args = parse_args(argv)

    logger.info("=" * 60)
    logger.info("SCRAPLEDGER - Transaction Reporting Engine")
    logger.info("=" * 60)

    try:
        result = asyncio.run(run(args))
    except Exception as e:
        logger.error(f"Main execution failed: {e}")
        raise

    if result is not None:
        print(result.model_dump_json(indent=2))
    return result


if __name__ == "__main__":
    main()
