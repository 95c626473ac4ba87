"""Import assets from a CSV or Excel sheet, one transaction per row."""

from __future__ import annotations

import argparse
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd
from pydantic import ValidationError

REQUIRED_COLUMNS = {"serial_number", "product_id"}
DATE_COLUMNS = (
    "warranty_start_date",
    "warranty_end_date",
    "eol_date",
    "eos_date",
    "purchase_date",
)
INTEGER_COLUMNS = ("product_id", "assigned_to", "location_id", "vendor_id")
IMPORT_SOURCE = "import"


@dataclass
class RowResult:
    row: int
    status: str
    asset_id: Optional[str] = None
    asset_tag: Optional[str] = None
    error: Optional[str] = None


@dataclass
class ImportSummary:
    rows: List[RowResult] = field(default_factory=list)

    @property
    def created(self) -> int:
        return sum(1 for row in self.rows if row.status == "created")

    @property
    def failed(self) -> int:
        return len(self.rows) - self.created


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Create assets from a CSV or Excel sheet and report the outcome of each row."
    )
    parser.add_argument("source", type=Path, help="Path to a .csv, .xlsx or .xls file")
    parser.add_argument(
        "--database-url",
        dest="database_url",
        help="Database URL (defaults to DATABASE_URL or the local SQLite file)",
    )
    parser.add_argument("--sheet", dest="sheet", default=0, help="Excel sheet name or index")
    parser.add_argument(
        "--report",
        dest="report",
        type=Path,
        default=Path("asset_import_report.csv"),
        help="Where to write the per-row CSV report",
    )
    parser.add_argument("--actor", dest="actor", default=None, help="Actor recorded in history")
    return parser.parse_args()


def load_frame(source: Path, sheet: Any = 0) -> pd.DataFrame:
    suffix = source.suffix.lower()
    if suffix == ".csv":
        return pd.read_csv(source, dtype=str, keep_default_na=False)
    if suffix in {".xlsx", ".xls"}:
        return pd.read_excel(source, sheet_name=sheet, dtype=str, keep_default_na=False)
    raise ValueError(f"Unsupported file type '{source.suffix}' for {source}")


def prepare_frame(df: pd.DataFrame) -> pd.DataFrame:
    """Normalise headers and cell values so each row maps onto ``AssetCreate``."""

    df = df.copy()
    df.columns = [str(column).strip().lower() for column in df.columns]
    missing = REQUIRED_COLUMNS - set(df.columns)
    if missing:
        raise ValueError(f"Missing required columns: {', '.join(sorted(missing))}")
    for column in df.columns:
        df[column] = df[column].astype(str).str.strip()
    df = df.replace({"": None, "nan": None, "None": None})
    for column in DATE_COLUMNS:
        if column in df.columns:
            parsed = pd.to_datetime(df[column], errors="coerce")
            df[column] = pd.Series(
                [value.date() if pd.notna(value) else raw for value, raw in zip(parsed, df[column])],
                index=df.index,
                dtype="object",
            )
    for column in INTEGER_COLUMNS:
        if column in df.columns:
            df[column] = pd.Series(
                [int(float(value)) if _is_number(value) else value for value in df[column]],
                index=df.index,
                dtype="object",
            )
    return df


def _is_number(value: Any) -> bool:
    if value is None:
        return False
    try:
        float(value)
    except (TypeError, ValueError):
        return False
    return True


def _row_payload(row: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in row.items() if value is not None}


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()))
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts)


def import_rows(
    session,
    df: pd.DataFrame,
    *,
    actor_id: Optional[str] = None,
) -> ImportSummary:
    """Create one asset per row; a failing row never blocks the others."""

    from ..schemas import AssetCreate
    from ..services import AssetService
    from ..services.errors import AssetEngineError

    summary = ImportSummary()
    # Row numbers follow the sheet, counting the header as row 1.
    for offset, record in enumerate(df.to_dict(orient="records")):
        row_number = offset + 2
        try:
            payload = AssetCreate.model_validate(_row_payload(record))
        except ValidationError as exc:
            summary.rows.append(
                RowResult(row=row_number, status="failed", error=_format_validation_error(exc))
            )
            continue
        try:
            asset = AssetService.create_asset(
                session, payload, actor_id=actor_id, source=IMPORT_SOURCE
            )
        except AssetEngineError as exc:
            summary.rows.append(RowResult(row=row_number, status="failed", error=exc.message))
            continue
        summary.rows.append(
            RowResult(
                row=row_number,
                status="created",
                asset_id=asset.id,
                asset_tag=asset.asset_tag,
            )
        )
    return summary


def write_report(summary: ImportSummary, destination: Path) -> None:
    report_df = pd.DataFrame(
        [
            {
                "row": result.row,
                "status": result.status,
                "asset_id": result.asset_id,
                "asset_tag": result.asset_tag,
                "error": result.error,
            }
            for result in summary.rows
        ],
        columns=["row", "status", "asset_id", "asset_tag", "error"],
    )
    destination.parent.mkdir(parents=True, exist_ok=True)
    report_df.to_csv(destination, index=False)


def main() -> None:
    args = _parse_args()

    if args.database_url:
        os.environ.setdefault("DATABASE_URL", args.database_url)

    from ..database import SessionLocal

    df = prepare_frame(load_frame(args.source, args.sheet))
    session = SessionLocal()
    try:
        summary = import_rows(session, df, actor_id=args.actor)
    finally:
        session.close()

    write_report(summary, args.report)
    print("==== Asset import summary ====")
    print(f"Rows read: {len(summary.rows)}")
    print(f"Assets created: {summary.created}")
    print(f"Rows failed: {summary.failed}")
    print(f"Report written to {args.report.as_posix()}")


if __name__ == "__main__":
    main()
