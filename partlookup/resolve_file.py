# partlookup/resolve_file.py
from __future__ import annotations

import argparse
from pathlib import Path
from typing import List, Optional, Sequence

import pandas as pd
from loguru import logger

from . import config
from .config import VendorResults
from .errors import ValidationError
from .pipeline import VendorOrchestrator, build_orchestrator

RESULT_COLUMNS = ["vendor", "vendorDisplayName", "description", "partNumber", "explanation"]

# ---------- IO helpers ----------

def _read_any(path: Path) -> pd.DataFrame:
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    ext = path.suffix.lower()
    if ext in [".xlsx", ".xls"]:
        return pd.read_excel(path)
    return pd.read_csv(path, encoding="utf-8")


def read_descriptions(path: Path, column: str = "description") -> List[str]:
    """
    One description per row. Column lookup is case-insensitive; blank rows
    are skipped, row order is kept.
    """
    df = _read_any(path)
    cols = {str(c).strip().lower(): c for c in df.columns}
    col = cols.get(column.strip().lower())
    if col is None:
        raise ValueError(f"Expected a '{column}' column. Found: {list(df.columns)}")
    values = df[col].dropna().astype(str).str.strip()
    return [v for v in values.tolist() if v]


def results_to_frame(groups: Sequence[VendorResults]) -> pd.DataFrame:
    rows = [r.model_dump() for g in groups for r in g.partNumbers]
    return pd.DataFrame(rows, columns=RESULT_COLUMNS)


def resolve_file(
    in_path: Path,
    out_path: Path,
    column: str = "description",
    vendor: Optional[str] = None,
    orchestrator: Optional[VendorOrchestrator] = None,
) -> pd.DataFrame:
    descriptions = read_descriptions(in_path, column)
    if not descriptions:
        raise ValidationError(f"No descriptions found in {in_path}")

    orchestrator = orchestrator or build_orchestrator()
    vendors = orchestrator.vendors.select(vendor)
    logger.info("Resolving {} descriptions from {} for {}", len(descriptions), in_path,
                ", ".join(v.key for v in vendors))

    df = results_to_frame(orchestrator.resolve_batch(descriptions, vendors))
    out_path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(out_path, index=False, encoding="utf-8")
    return df

# ---------- CLI ----------

def main(argv: Optional[Sequence[str]] = None) -> None:
    ap = argparse.ArgumentParser(description="Resolve a file of RFQ descriptions into vendor part numbers.")
    ap.add_argument("input", type=Path, help="CSV or XLSX with one description per row")
    ap.add_argument("--out", type=Path, default=Path("part_numbers.csv"))
    ap.add_argument("--column", default="description", help="Column holding the descriptions")
    ap.add_argument("--vendor", default=None, help="Only resolve for this vendor key")
    ap.add_argument("--workers", type=int, default=None, help="Descriptions resolved in parallel")
    args = ap.parse_args(argv)

    orchestrator = build_orchestrator(max_workers=args.workers) if args.workers else None
    df = resolve_file(args.input, args.out, column=args.column, vendor=args.vendor, orchestrator=orchestrator)

    resolved = int((df["partNumber"] != config.NOT_AVAILABLE).sum())
    print(f"Wrote {len(df)} rows to {args.out} ({resolved} resolved)")


if __name__ == "__main__":
    main()
