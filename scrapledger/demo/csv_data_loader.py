"""Demo data loader for scrap-yard CSV files - stands in for the live purchase/sale tables"""

import pandas as pd
from pathlib import Path
from typing import Optional, Tuple
import os
from scrapledger.constants import TransactionKind
from scrapledger.tools.data_source import (
    CounterpartyDirectory,
    InMemorySource,
    RecordSource,
    Subscription,
    frame_to_records
)
from scrapledger.utils.errors import SourceUnavailableError
from scrapledger.utils.logging import get_logger

logger = get_logger(__name__)

PURCHASES_FILE = "purchases.csv"
SALES_FILE = "sales.csv"
SUPPLIERS_FILE = "suppliers.csv"


class DemoDataLoader:
    """
    Loads demo data from CSV files.

    Exposes the same row shapes the live tables deliver, so the engine runs
    unchanged against the demo dataset.
    """

    def __init__(self, data_dir: Optional[str] = None):
        """
        Initialize demo data loader

        Args:
            data_dir: Path to directory containing CSV files (defaults to demo_data/)
        """
        if data_dir is None:
            data_dir = os.getenv("DEMO_DATA_DIR", "demo_data")

        self.data_dir = Path(data_dir)
        if not self.data_dir.exists():
            raise FileNotFoundError(f"Demo data directory not found: {data_dir}")

        self._purchases = None
        self._sales = None
        self._suppliers = None

        logger.info(f"Demo data loader initialized with data from: {self.data_dir}")

    def _load_csv(self, filename: str) -> pd.DataFrame:
        """Load CSV file with error handling"""
        filepath = self.data_dir / filename
        if not filepath.exists():
            logger.warning(f"File not found: {filepath}")
            return pd.DataFrame()

        try:
            df = pd.read_csv(filepath, dtype={'id': str, 'supplier_id': str, 'transaction_number': str, 'transaction_id': str})
            logger.info(f"Loaded {len(df)} records from {filename}")
            return df
        except (OSError, ValueError) as e:
            logger.error(f"Error loading {filename}: {e}")
            return pd.DataFrame()

    @property
    def purchases(self) -> pd.DataFrame:
        """Load and cache purchase rows"""
        if self._purchases is None:
            self._purchases = self._load_csv(PURCHASES_FILE)
        return self._purchases

    @property
    def sales(self) -> pd.DataFrame:
        """Load and cache sale rows"""
        if self._sales is None:
            self._sales = self._load_csv(SALES_FILE)
        return self._sales

    @property
    def suppliers(self) -> pd.DataFrame:
        """Load and cache the supplier directory"""
        if self._suppliers is None:
            self._suppliers = self._load_csv(SUPPLIERS_FILE)
        return self._suppliers

    def reset_cache(self) -> None:
        self._purchases = None
        self._sales = None
        self._suppliers = None

    def records(self, kind: TransactionKind):
        df = self.purchases if TransactionKind(kind) == TransactionKind.PURCHASE else self.sales
        return frame_to_records(df)

    def build_directory(self) -> CounterpartyDirectory:
        return CounterpartyDirectory.from_frame(self.suppliers)

    def build_memory_sources(self) -> Tuple[InMemorySource, InMemorySource]:
        """Mutable in-memory copies of both tables, for simulating live changes"""
        return (
            InMemorySource(TransactionKind.PURCHASE, self.records(TransactionKind.PURCHASE), name="demo_purchases"),
            InMemorySource(TransactionKind.SALE, self.records(TransactionKind.SALE), name="demo_sales")
        )

    def get_summary_stats(self) -> dict:
        """Get summary statistics of demo data"""
        return {
            'purchases': len(self.purchases),
            'sales': len(self.sales),
            'suppliers': len(self.suppliers),
            'data_dir': str(self.data_dir.absolute())
        }


class CsvDemoSource(RecordSource):
    """
    File-backed source: every full fetch re-reads the CSV, so a reconnect
    picks up edits made to the file. Emits no change events.
    """

    def __init__(self, loader: DemoDataLoader, kind: TransactionKind):
        super().__init__(TransactionKind(kind), name=f"csv_{TransactionKind(kind).value}")
        self.loader = loader

    async def fetch_all(self):
        filename = PURCHASES_FILE if self.kind == TransactionKind.PURCHASE else SALES_FILE
        if not (self.loader.data_dir / filename).exists():
            raise SourceUnavailableError(f"Demo file missing: {filename}", source=self.name)

        self.loader.reset_cache()
        records = self.loader.records(self.kind)
        return sorted(records, key=lambda r: str(r.get('created_at', '')), reverse=True)

    async def subscribe(self) -> Subscription:
        return Subscription(self.kind)
