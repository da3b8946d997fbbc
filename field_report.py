# field_report.py
# Tabular report of a conversion run: one row per DocuSign tab with its
# outcome, page and rectangle, plus the per-category field counters.
# Excel (.xlsx) when possible, CSV otherwise.

import os
from typing import Dict, List

import pandas as pd
from openpyxl import load_workbook
from openpyxl.styles import Font, PatternFill

from pdf_convert import ConversionResult

REPORT_COLUMNS = [
    "index", "collection", "tab_type", "label", "kind", "outcome", "page",
    "left", "bottom", "right", "top", "field_name", "strategy", "detail",
]
_SKIPPED_FILL = PatternFill(start_color="FFF2CC", end_color="FFF2CC", fill_type="solid")
_FAILED_FILL = PatternFill(start_color="F8CBAD", end_color="F8CBAD", fill_type="solid")


def _ensure_parent_dir(path: str):
    d = os.path.dirname(os.path.abspath(path))
    if d and not os.path.exists(d):
        os.makedirs(d, exist_ok=True)


def tab_report_frame(result: ConversionResult) -> pd.DataFrame:
    rows: List[Dict] = [t.as_row() for t in result.tabs]
    return pd.DataFrame(rows, columns=REPORT_COLUMNS)


def counters_frame(result: ConversionResult) -> pd.DataFrame:
    counts = result.counters.as_dict()
    return pd.DataFrame({"category": list(counts.keys()), "fields": list(counts.values())})


def _style_workbook(xlsx_path: str):
    """Bold header, frozen first row, filters, colour for skipped/failed rows."""
    wb = load_workbook(xlsx_path)
    try:
        ws = wb["Tabs"]
        headers = {cell.value: cell.column for cell in ws[1] if cell.value}
        for cell in ws[1]:
            cell.font = Font(bold=True)
        ws.freeze_panes = "A2"
        ws.auto_filter.ref = ws.dimensions

        col_outcome = headers.get("outcome")
        if col_outcome:
            for r in range(2, ws.max_row + 1):
                outcome = str(ws.cell(row=r, column=col_outcome).value or "")
                fill = _FAILED_FILL if outcome == "failed" else _SKIPPED_FILL if outcome.startswith("skipped") else None
                if fill is None:
                    continue
                for c in range(1, ws.max_column + 1):
                    ws.cell(row=r, column=c).fill = fill

        for col in ws.columns:
            width = max(len(str(c.value)) if c.value is not None else 0 for c in col)
            ws.column_dimensions[col[0].column_letter].width = min(60, max(8, width + 2))
        wb.save(xlsx_path)
    finally:
        wb.close()


def export_tab_report(result: ConversionResult, out_path: str = "tab_report.xlsx") -> str:
    """
    Write the per-tab report. '.csv' paths get a single CSV; anything else is
    written as a two-sheet workbook (Tabs, Counters). If Excel output fails
    the rows go to a CSV next to the requested path. Returns the path written.
    """
    df = tab_report_frame(result)
    _ensure_parent_dir(out_path)

    if out_path.lower().endswith(".csv"):
        df.to_csv(out_path, index=False, encoding="utf-8-sig")
    else:
        try:
            with pd.ExcelWriter(out_path, engine="openpyxl") as writer:
                df.to_excel(writer, sheet_name="Tabs", index=False)
                counters_frame(result).to_excel(writer, sheet_name="Counters", index=False)
            _style_workbook(out_path)
        except Exception as e:
            fallback = os.path.splitext(out_path)[0] + ".csv"
            df.to_csv(fallback, index=False, encoding="utf-8-sig")
            print(f"⚠️  Could not write Excel ({e}). Wrote CSV instead: {fallback}")
            return fallback

    print(f"📤 Tab report written to {out_path} with {len(df)} rows.")
    return out_path
