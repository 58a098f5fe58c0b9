#!/usr/bin/env python3
"""
Generate a synthetic scrap-yard dataset for the demo pipeline.

Writes purchases.csv, sales.csv and suppliers.csv with the same columns as
the live tables, including the awkward rows the engine has to cope with:
- walk-in sellers with and without a name
- purchases from supplier ids missing from the directory
- rows with no unit price (price derived from amount / weight)
- zero-weight cancelled rows
- sales with no recorded buyer

Usage:
    python scripts/generate_demo_data.py                     # 90 days into demo_data/
    python scripts/generate_demo_data.py --days 30 --out tmp/
"""

import sys
import argparse
from pathlib import Path
from datetime import date, datetime, timedelta
from typing import Dict, List

import numpy as np
import pandas as pd

# Add parent directory to path for imports
sys.path.append(str(Path(__file__).parent.parent))

# Configuration
RANDOM_SEED = 42
DEFAULT_OUT_DIR = Path(__file__).parent.parent / "demo_data"

# Buy / sell prices per kg
MATERIALS: Dict[str, tuple] = {
    "Copper": (800, 950),
    "Aluminium": (150, 195),
    "Brass": (400, 500),
    "Scrap Iron": (30, 45),
    "Batteries": (100, 120),
    "Plastic PET": (15, 22),
}

SUPPLIERS = [
    ("sup-1", "Kamau Metals"),
    ("sup-2", "Wanjiru Recyclers"),
    ("sup-3", "Otieno Scrap Traders"),
    ("sup-4", "Eastlands Collectors"),
    ("sup-5", "Kilimani Salvage"),
]

BUYERS = [
    ("buy-1", "Mombasa Steel Mills"),
    ("buy-2", "Nairobi Copper Works"),
    ("buy-3", "Thika Plastics Ltd"),
]

WALKIN_NAMES = ["Peter Mwangi", "Grace Akinyi", "John Kiprop", None]
PAYMENT_METHODS = ["cash", "mpesa", "bank_transfer"]
GRADES = ["Grade A", "Grade B", "Grade C", None]


def _timestamp(day: date, rng: np.random.Generator) -> str:
    moment = datetime.combine(day, datetime.min.time()) + timedelta(
        hours=int(rng.integers(7, 18)), minutes=int(rng.integers(0, 60))
    )
    return moment.isoformat() + "+03:00"


def generate_purchases(days: List[date], rng: np.random.Generator) -> pd.DataFrame:
    rows = []
    for day in days:
        for _ in range(int(rng.poisson(3))):
            material = str(rng.choice(list(MATERIALS)))
            buy_price = MATERIALS[material][0] * float(rng.uniform(0.9, 1.1))
            weight = round(float(rng.gamma(2.0, 15.0)), 1)
            walkin = bool(rng.random() < 0.25)

            if walkin:
                supplier_id, walkin_name = None, WALKIN_NAMES[int(rng.integers(len(WALKIN_NAMES)))]
            elif rng.random() < 0.05:
                supplier_id, walkin_name = "sup-unregistered", None
            else:
                supplier_id, walkin_name = SUPPLIERS[int(rng.integers(len(SUPPLIERS)))][0], None

            cancelled = bool(rng.random() < 0.03)
            if cancelled:
                weight = 0.0
            unit_price = None if rng.random() < 0.1 else round(buy_price, 2)
            created_at = _timestamp(day, rng)

            rows.append({
                "id": f"p-{len(rows) + 1:05d}",
                "supplier_id": supplier_id,
                "is_walkin": walkin,
                "walkin_name": walkin_name,
                "material_type": material,
                "transaction_date": day.isoformat(),
                "total_amount": round(weight * buy_price, 2),
                "weight_kg": weight,
                "unit_price": unit_price,
                "payment_method": str(rng.choice(PAYMENT_METHODS)),
                "payment_status": "failed" if cancelled else str(rng.choice(["completed", "completed", "pending"])),
                "quality_grade": GRADES[int(rng.integers(len(GRADES)))],
                "notes": "cancelled before weighing" if cancelled else None,
                "transaction_number": f"TXN-{day.strftime('%Y%m%d')}-{len(rows) + 1:03d}",
                "created_at": created_at,
                "updated_at": None,
            })
    return pd.DataFrame(rows)


def generate_sales(days: List[date], rng: np.random.Generator) -> pd.DataFrame:
    rows = []
    for day in days:
        for _ in range(int(rng.poisson(1.2))):
            material = str(rng.choice(list(MATERIALS)))
            sell_price = MATERIALS[material][1] * float(rng.uniform(0.95, 1.05))
            weight = round(float(rng.gamma(3.0, 20.0)), 1)
            buyer_id, buyer_name = (None, None) if rng.random() < 0.1 else BUYERS[int(rng.integers(len(BUYERS)))]

            rows.append({
                "id": f"s-{len(rows) + 1:05d}",
                "transaction_id": f"SALE-{day.strftime('%Y%m%d')}-{len(rows) + 1:03d}",
                "supplier_id": buyer_id,
                "supplier_name": buyer_name,
                "material_name": material,
                "transaction_date": day.isoformat(),
                "total_amount": round(weight * sell_price, 2),
                "weight_kg": weight,
                "price_per_kg": None if rng.random() < 0.1 else round(sell_price, 2),
                "payment_method": str(rng.choice(PAYMENT_METHODS)),
                "payment_status": str(rng.choice(["completed", "completed", "pending"])),
                "notes": None,
                "created_at": _timestamp(day, rng),
                "updated_at": None,
            })
    return pd.DataFrame(rows)


def generate_directory() -> pd.DataFrame:
    return pd.DataFrame(
        [{"id": cid, "name": name, "status": "active"} for cid, name in SUPPLIERS + BUYERS]
    )


def main():
    parser = argparse.ArgumentParser(description="Generate synthetic demo CSVs")
    parser.add_argument("--days", type=int, default=90, help="Number of days of history (default: 90)")
    parser.add_argument("--end", type=date.fromisoformat, default=date.today(), help="Last day, YYYY-MM-DD")
    parser.add_argument("--out", default=str(DEFAULT_OUT_DIR), help="Output directory (default: demo_data/)")
    parser.add_argument("--seed", type=int, default=RANDOM_SEED, help="Random seed")
    args = parser.parse_args()

    rng = np.random.default_rng(args.seed)
    days = [args.end - timedelta(days=offset) for offset in range(args.days - 1, -1, -1)]

    out_dir = Path(args.out)
    out_dir.mkdir(parents=True, exist_ok=True)

    purchases = generate_purchases(days, rng)
    sales = generate_sales(days, rng)
    directory = generate_directory()

    purchases.to_csv(out_dir / "purchases.csv", index=False)
    sales.to_csv(out_dir / "sales.csv", index=False)
    directory.to_csv(out_dir / "suppliers.csv", index=False)

    print(f"✅ Wrote {len(purchases)} purchases, {len(sales)} sales, {len(directory)} directory entries to {out_dir}")


if __name__ == "__main__":
    main()
