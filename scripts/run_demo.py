#!/usr/bin/env python
"""
Demo runner script for the scrap ledger reporting engine

Loads the demo CSVs, starts the engine, prints the dashboard summary and
period reports, then simulates a few live changes (insert, redelivered
duplicate, update, delete of an unknown id) and shows the displayed report
refreshing.

Usage:
    python scripts/run_demo.py                      # Full demo
    python scripts/run_demo.py --dry-run            # Validate and summarise data only
    python scripts/run_demo.py --month 2024-03      # Report month
    python scripts/run_demo.py --export-dir out/    # Also write CSV exports
"""

import os
import sys
import asyncio
import argparse
from pathlib import Path
from datetime import date, datetime

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Set demo mode environment variables
os.environ["DEMO_MODE"] = "true"
os.environ["ENVIRONMENT"] = "demo"
os.environ.setdefault("LOG_LEVEL", "WARNING")

from scrapledger.constants import ChangeOperation, GroupBy
from scrapledger.demo.csv_data_loader import DemoDataLoader, PURCHASES_FILE, SALES_FILE, SUPPLIERS_FILE
from scrapledger.models.criteria import FilterCriteria
from scrapledger.orchestrator.engine import ReportingEngine
from scrapledger.tools.export import suggest_filename
from scrapledger.utils.config_loader import load_config
from scrapledger.utils.logging import get_logger

logger = get_logger(__name__)


def print_header(title: str):
    """Print formatted section header"""
    print("\n" + "=" * 70)
    print(f"  {title}")
    print("=" * 70)


def validate_demo_data(data_dir: str = "demo_data") -> bool:
    """
    Validate that demo data files exist

    Args:
        data_dir: Path to demo data directory

    Returns:
        True if all required files exist
    """
    data_path = Path(data_dir)
    required_files = [PURCHASES_FILE, SALES_FILE, SUPPLIERS_FILE]

    print_header("Demo Data Validation")

    if not data_path.exists():
        print(f"❌ Demo data directory not found: {data_dir}")
        return False

    print(f"✅ Demo data directory found: {data_path.absolute()}")

    missing_files = []
    for filename in required_files:
        filepath = data_path / filename
        if filepath.exists():
            size_kb = filepath.stat().st_size / 1024
            print(f"  ✅ {filename} ({size_kb:.1f} KB)")
        else:
            print(f"  ❌ {filename} (missing)")
            missing_files.append(filename)

    if missing_files:
        print(f"\n❌ Missing required files: {missing_files}")
        return False

    print("\n✅ All demo data files present")
    return True


def show_data_summary(loader: DemoDataLoader):
    """Display summary statistics of demo data"""
    print_header("Demo Data Summary")

    stats = loader.get_summary_stats()
    print(f"📁 Data Directory: {stats['data_dir']}")
    print(f"\n📊 Record Counts:")
    print(f"  • Purchases: {stats['purchases']:,}")
    print(f"  • Sales: {stats['sales']:,}")
    print(f"  • Directory entries: {stats['suppliers']:,}")

    print(f"\n📅 Date Ranges:")
    for label, df in (("Purchases", loader.purchases), ("Sales", loader.sales)):
        if not df.empty and 'transaction_date' in df.columns:
            print(f"  • {label}: {df['transaction_date'].min()} to {df['transaction_date'].max()}")


def print_summary(engine: ReportingEngine):
    summary = engine.summary()
    print_header("Dashboard KPIs")
    print(f"💰 Revenue ({summary.revenue_basis}): {summary.total_revenue:,.2f}")
    print(f"🔢 Transactions: {summary.total_transactions:,}")
    print(f"⚖️  Weight: {summary.total_weight:,.1f} kg")
    print(f"📈 Growth (30d): {summary.revenue_growth:+.1f}%")
    print(f"👥 Active counterparties: {summary.active_counterparties}")
    print(f"🏆 Top material: {summary.top_material}  |  Top counterparty: {summary.top_counterparty}")
    print(f"✅ Completed: {summary.completed_transactions}  ⏳ Pending: {summary.pending_transactions}")


def print_groups(report):
    for group in report.groups:
        print(
            f"  • {group.key:<22} txns={group.transaction_count:<3} "
            f"revenue={group.total_revenue:>10,.2f} profit={group.net_profit:>10,.2f} "
            f"weight={group.total_weight:>7,.1f}kg avg={group.avg_price_per_kg:,.2f}/kg"
        )


async def run_demo(loader: DemoDataLoader, year: int, month: int, export_dir: str = None):
    """
    Run the engine against in-memory copies of the demo tables

    Args:
        loader: Demo data loader
        year, month: Month to report on
        export_dir: Optional directory for CSV exports
    """
    purchases, sales = loader.build_memory_sources()
    engine = ReportingEngine(purchases, sales, directory=loader.build_directory(), config=load_config())

    print_header("Starting Engine")
    print(f"⏰ Start time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")

    async with engine:
        await engine.wait_until_loaded(timeout=30)
        print(f"✅ Loaded {len(engine.transactions)} transactions, listeners: {engine.listener_states()}")

        print_summary(engine)

        monthly = await engine.monthly_report(year, month)
        print_header(f"Monthly Report - {monthly.month_label}")
        print(f"Revenue: {monthly.totals.total_revenue:,.2f}  MoM: {monthly.month_over_month_growth:+.1f}%  "
              f"YoY: {monthly.year_over_year_growth:+.1f}%")
        for week in monthly.weeks:
            print(f"  • {week.label} ({week.period}): {week.transactions} txns, {week.revenue:,.2f}")
        print("\n🏷️  Material prices:")
        for analysis in monthly.material_prices:
            print(f"  • {analysis.material:<14} min={analysis.min_price:,.2f} "
                  f"max={analysis.max_price:,.2f} avg={analysis.avg_price:,.2f}")

        first_day = date(year, month, 1)
        weekly = await engine.weekly_report(first_day)
        print_header(f"Weekly Report - {weekly.start} to {weekly.end}")
        for day in weekly.days:
            print(f"  • {day.day_name:<9} {day.transactions} txns  {day.revenue:,.2f}")
        if weekly.best_day:
            print(f"🏆 Best day: {weekly.best_day.day_name} ({weekly.best_day.revenue:,.2f})")
        print(f"📈 Growth vs previous week: {weekly.revenue_growth:+.1f}%")

        criteria = FilterCriteria.for_range(first_day, monthly.end, group_by=GroupBy.MATERIAL)
        custom = await engine.generate_report(criteria)
        print_header("Custom Report - by material")
        print_groups(custom)

        print_header("Simulating Live Changes")
        inserted = purchases.emit(ChangeOperation.INSERT, {
            "id": "p-live-1",
            "supplier_id": "sup-1",
            "is_walkin": False,
            "material_type": "Copper",
            "transaction_date": first_day.isoformat(),
            "total_amount": 4000,
            "weight_kg": 5,
            "payment_method": "mpesa",
            "payment_status": "completed",
            "created_at": datetime.now().isoformat()
        })
        purchases.deliver(inserted)
        purchases.emit(ChangeOperation.UPDATE, {**inserted.record, "total_amount": 4400, "weight_kg": 5.5,
                                                "updated_at": datetime.now().isoformat()})
        sales.emit(ChangeOperation.DELETE, {"id": "s-does-not-exist"})
        await engine.drain()
        # Let the displayed-report refresh finish
        await asyncio.sleep(0.1)

        print(f"✅ Working set now {len(engine.transactions)} transactions")
        print("🔄 Displayed report after refresh:")
        print_groups(engine.current_report)

        if export_dir:
            target = Path(export_dir)
            target.mkdir(parents=True, exist_ok=True)
            for report in (monthly, weekly, engine.current_report):
                path = target / suggest_filename(report.report_type, report.end)
                path.write_text(engine.export(report))
                print(f"💾 Exported {path}")

    print_header("Demo Complete")


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(
        description="Run the reporting engine in demo mode with CSV data",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument('--dry-run', action='store_true', help="Preview demo data without starting the engine")
    parser.add_argument('--month', default="2024-03", help="Month to report on, YYYY-MM (default: 2024-03)")
    parser.add_argument('--data-dir', default="demo_data", help="Path to demo data directory (default: demo_data)")
    parser.add_argument('--export-dir', default=None, help="Write CSV exports into this directory")
    args = parser.parse_args()

    os.environ["DEMO_DATA_DIR"] = args.data_dir
    year, month = (int(part) for part in args.month.split("-"))

    print_header("Scrap Ledger Reporting Engine - Demo Mode")
    print(f"🎯 Mode: DEMO (using CSV files)")
    print(f"📁 Data Directory: {args.data_dir}")

    if not validate_demo_data(args.data_dir):
        print("\n❌ Demo data validation failed. Run scripts/generate_demo_data.py to create it.")
        sys.exit(1)

    loader = DemoDataLoader(args.data_dir)
    show_data_summary(loader)

    if args.dry_run:
        print_header("Dry Run Complete")
        print("✅ Demo data validated successfully")
        print("💡 Run without --dry-run to start the engine")
        return

    try:
        asyncio.run(run_demo(loader, year, month, args.export_dir))
    except Exception as e:
        print(f"\n❌ Demo failed: {e}")
        logger.error(f"Demo run failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
