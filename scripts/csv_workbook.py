"""
Convert between the data/ directory of CSV tables and a single xlsx workbook.

Usage:
    python scripts/csv_workbook.py pack   [--csv-dir DIR] [--xlsx PATH]
    python scripts/csv_workbook.py unpack [--xlsx PATH]   [--csv-dir DIR]

Defaults:
    --csv-dir  data/                  (repo root)
    --xlsx     degree_data.xlsx       (repo root)

Only the tables the loader knows about are copied, in loader order.
"""

import argparse
import os
import sys

import pandas as pd

sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "backend"))

from data_loader import OPTIONAL_TABLES, REQUIRED_TABLES

TABLE_ORDER = REQUIRED_TABLES + OPTIONAL_TABLES


def pack(csv_dir: str, xlsx_path: str) -> list[str]:
    """Write every known CSV table in csv_dir as one sheet of xlsx_path."""
    if not os.path.isdir(csv_dir):
        print(f"[FATAL] CSV directory not found: {csv_dir}")
        sys.exit(1)

    written = []
    with pd.ExcelWriter(xlsx_path, engine="openpyxl") as writer:
        for name in TABLE_ORDER:
            src = os.path.join(csv_dir, f"{name}.csv")
            if not os.path.isfile(src):
                continue
            df = pd.read_csv(src)
            df.to_excel(writer, sheet_name=name, index=False)
            written.append(name)
            print(f"[OK]   {src} → {name}  ({len(df)} rows)")

    print(f"[INFO] Packed {len(written)} tables into '{xlsx_path}'")
    return written


def unpack(xlsx_path: str, csv_dir: str) -> list[str]:
    """Write every known sheet of xlsx_path as <sheet>.csv under csv_dir."""
    if not os.path.isfile(xlsx_path):
        print(f"[FATAL] Source file not found: {xlsx_path}")
        sys.exit(1)

    os.makedirs(csv_dir, exist_ok=True)
    xl = pd.ExcelFile(xlsx_path)
    written = []
    for name in TABLE_ORDER:
        if name not in xl.sheet_names:
            continue
        df = xl.parse(name)
        dest = os.path.join(csv_dir, f"{name}.csv")
        df.to_csv(dest, index=False)
        written.append(name)
        print(f"[OK]   {name} → {dest}  ({len(df)} rows)")

    print(f"[INFO] Unpacked {len(written)} tables into '{csv_dir}'")
    return written


if __name__ == "__main__":
    repo_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    parser = argparse.ArgumentParser(description="Convert data tables between CSV and xlsx.")
    parser.add_argument("direction", choices=["pack", "unpack"])
    parser.add_argument("--csv-dir", default=os.path.join(repo_root, "data"), help="CSV directory")
    parser.add_argument("--xlsx", default=os.path.join(repo_root, "degree_data.xlsx"), help="Workbook path")
    args = parser.parse_args()
    if args.direction == "pack":
        pack(args.csv_dir, args.xlsx)
    else:
        unpack(args.xlsx, args.csv_dir)
