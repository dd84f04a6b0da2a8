#!/usr/bin/env python3
"""Synthetic contact spreadsheet generator for performance testing.

Writes an .xlsx or .csv with Name / Phone / Email / Company / Notes columns.
A configurable share of rows repeats an earlier phone number (in a different
format) and another share is invalid, so that duplicate detection and
validation do real work.
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

import numpy as np
import pandas as pd

FIRST_NAMES = ["Asha", "Ravi", "Priya", "Arjun", "Meena", "Karthik", "Divya", "Suresh"]
LAST_NAMES = ["Rao", "Kumar", "Iyer", "Nair", "Reddy", "Sharma", "Menon", "Pillai"]
COMPANIES = ["Acme", "Globex", "Initech", "Umbrella", "Hooli", ""]


def _format_phone(number: int, style: int) -> object:
    digits = str(number)
    if style == 0:
        return digits
    if style == 1:
        return f"+91 {digits[:5]} {digits[5:]}"
    if style == 2:
        return f"{digits[:5]}-{digits[5:]}"
    return int(f"91{digits}")  # 数値セル


def generate_contacts(
    rows: int,
    *,
    duplicate_ratio: float = 0.1,
    invalid_ratio: float = 0.05,
    seed: int = 42,
) -> pd.DataFrame:
    """Generate a DataFrame of synthetic contacts.

    Args:
        rows: Number of data rows
        duplicate_ratio: Share of rows reusing an earlier phone number
        invalid_ratio: Share of rows with a broken name or phone
        seed: Random seed for reproducible data
    """
    rng = np.random.default_rng(seed)
    numbers = rng.integers(6_000_000_000, 9_999_999_999, rows)
    styles = rng.integers(0, 4, rows)
    kinds = rng.random(rows)

    data: dict[str, list[object]] = {"Name": [], "Phone": [], "Email": [], "Company": [], "Notes": []}
    for i in range(rows):
        first = FIRST_NAMES[i % len(FIRST_NAMES)]
        last = LAST_NAMES[(i // len(FIRST_NAMES)) % len(LAST_NAMES)]
        number = int(numbers[i])
        if i > 0 and kinds[i] < duplicate_ratio:
            number = int(numbers[rng.integers(0, i)])
        name: object = f"{first} {last} {i}"
        phone = _format_phone(number, int(styles[i]))
        if duplicate_ratio <= kinds[i] < duplicate_ratio + invalid_ratio:
            if i % 2:
                name = ""
            else:
                phone = "12345"

        data["Name"].append(name)
        data["Phone"].append(phone)
        data["Email"].append(f"{first.lower()}.{i}@example.com" if i % 3 else "")
        data["Company"].append(COMPANIES[i % len(COMPANIES)])
        data["Notes"].append("")
    return pd.DataFrame(data)


def write_dataset(output_path: Path, df: pd.DataFrame) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    if output_path.suffix.lower() == ".csv":
        df.to_csv(output_path, index=False)
    else:
        with pd.ExcelWriter(output_path, engine="openpyxl") as writer:
            df.to_excel(writer, sheet_name="Contacts", index=False)


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Generate synthetic contact spreadsheets for performance testing",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s contacts.xlsx
  %(prog)s contacts.csv --rows 10000 --duplicates 0.2 --seed 7
        """,
    )
    parser.add_argument("output", type=Path, help="Output .xlsx or .csv path")
    parser.add_argument("--rows", type=int, default=10_000, help="Data rows (default: 10,000)")
    parser.add_argument("--duplicates", type=float, default=0.1, help="Duplicate share (default: 0.1)")
    parser.add_argument("--invalid", type=float, default=0.05, help="Invalid share (default: 0.05)")
    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")
    args = parser.parse_args()

    if args.rows <= 0:
        print("Error: --rows must be positive", file=sys.stderr)
        return 1
    if not 0 <= args.duplicates + args.invalid <= 1:
        print("Error: --duplicates + --invalid must be within [0, 1]", file=sys.stderr)
        return 1

    df = generate_contacts(
        args.rows, duplicate_ratio=args.duplicates, invalid_ratio=args.invalid, seed=args.seed
    )
    write_dataset(args.output, df)
    print(f"Created {args.output} ({len(df):,} rows)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
