"""Render report data and row tables to downloadable files.

CSV and Excel go through pandas (openpyxl as the Excel engine); HTML is a
Jinja2 template.
"""

from __future__ import annotations

import io
import json
import re
import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any

import pandas as pd
from jinja2 import Environment, FileSystemLoader, select_autoescape

from keystone.core.timeutil import utcnow

TEMPLATES_DIR = Path(__file__).parent / "templates"

_jinja_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html", "j2"]),
)

MEDIA_TYPES = {
    "csv": "text/csv",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "html": "text/html",
}
EXPORT_FORMATS = tuple(MEDIA_TYPES)

SUMMARY_COLUMNS = ["section", "metric", "value"]
_SHEET_NAME_INVALID = re.compile(r"[\[\]:*?/\\]")


class UnsupportedFormat(ValueError):
    """Requested export format is not one of ``EXPORT_FORMATS``."""


@dataclass
class ExportedFile:
    content: bytes
    media_type: str
    filename: str


# ── Flattening ────────────────────────────────────────────────────────────────


def _cell(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (list, tuple, dict)):
        return json.dumps(value, default=str)
    return value


def _is_table(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(item, Mapping) for item in value)


def flatten_report(data: Mapping[str, Any]) -> tuple[list[dict[str, Any]], dict[str, list[dict[str, Any]]]]:
    """Split a nested report into summary metric rows and named row tables.

    Scalars under a section become ``(section, metric, value)`` rows, nested
    dicts are expanded with dotted metric names, and lists of dicts become
    tables named after their path.
    """
    summary: list[dict[str, Any]] = []
    tables: dict[str, list[dict[str, Any]]] = {}

    def walk(section: str, prefix: str, value: Any) -> None:
        if isinstance(value, Mapping):
            for key, item in value.items():
                walk(section, f"{prefix}.{key}" if prefix else str(key), item)
        elif _is_table(value) and value:
            name = f"{section}.{prefix}" if prefix else section
            tables[name] = [{k: _cell(v) for k, v in row.items()} for row in value]
        else:
            summary.append({"section": section, "metric": prefix or section, "value": _cell(value)})

    for key, value in data.items():
        if isinstance(value, Mapping) or _is_table(value):
            walk(str(key), "", value)
        else:
            summary.append({"section": "report", "metric": str(key), "value": _cell(value)})

    return summary, tables


# ── Writers ───────────────────────────────────────────────────────────────────


def _frame(rows: Iterable[Mapping[str, Any]], columns: list[str] | None = None) -> pd.DataFrame:
    records = [{k: _cell(v) for k, v in row.items()} for row in rows]
    return pd.DataFrame.from_records(records, columns=columns)


def _sheet_name(name: str, used: set[str]) -> str:
    base = _SHEET_NAME_INVALID.sub("_", name)[:31] or "Sheet"
    candidate, n = base, 2
    while candidate.lower() in used:
        suffix = f"_{n}"
        candidate = base[: 31 - len(suffix)] + suffix
        n += 1
    used.add(candidate.lower())
    return candidate


def _slug(title: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-") or "export"


def _filename(title: str, fmt: str) -> str:
    return f"{_slug(title)}-{utcnow().strftime('%Y%m%d%H%M%S')}.{fmt}"


def _check_format(fmt: str) -> str:
    fmt = (fmt or "").lower()
    if fmt not in MEDIA_TYPES:
        raise UnsupportedFormat(f"Invalid export format: {fmt or '<empty>'}")
    return fmt


def _to_xlsx(sheets: list[tuple[str, pd.DataFrame]]) -> bytes:
    buffer = io.BytesIO()
    used: set[str] = set()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        for name, frame in sheets:
            frame.to_excel(writer, sheet_name=_sheet_name(name, used), index=False)
    return buffer.getvalue()


def _to_html(title: str, summary: list[dict[str, Any]], tables: dict[str, pd.DataFrame]) -> bytes:
    template = _jinja_env.get_template("report.html.j2")
    rendered = template.render(
        title=title,
        generated_at=utcnow().strftime("%Y-%m-%d %H:%M UTC"),
        summary=summary,
        tables=[
            (name, list(frame.columns), frame.astype(object).where(frame.notna(), None).to_dict("records"))
            for name, frame in tables.items()
        ],
    )
    return rendered.encode("utf-8")


def export_table(rows: Iterable[Mapping[str, Any]], fmt: str, title: str = "export") -> ExportedFile:
    """Export a single list of row dicts."""
    fmt = _check_format(fmt)
    frame = _frame(rows)

    if fmt == "csv":
        content = frame.to_csv(index=False).encode("utf-8")
    elif fmt == "xlsx":
        content = _to_xlsx([(title, frame)])
    else:
        content = _to_html(title, [], {title: frame})

    return ExportedFile(content=content, media_type=MEDIA_TYPES[fmt], filename=_filename(title, fmt))


def export_report(data: Mapping[str, Any], fmt: str, title: str = "report") -> ExportedFile:
    """Export a report: a summary of its metrics plus each of its row tables."""
    fmt = _check_format(fmt)
    summary, raw_tables = flatten_report(data)
    summary_frame = _frame(summary, columns=SUMMARY_COLUMNS)
    tables = {name: _frame(rows) for name, rows in raw_tables.items()}

    if fmt == "csv":
        parts = [summary_frame.to_csv(index=False)]
        for name, frame in tables.items():
            parts.append(f"\n{name}\n")
            parts.append(frame.to_csv(index=False))
        content = "".join(parts).encode("utf-8")
    elif fmt == "xlsx":
        content = _to_xlsx([("Summary", summary_frame), *tables.items()])
    else:
        content = _to_html(title, summary, tables)

    return ExportedFile(content=content, media_type=MEDIA_TYPES[fmt], filename=_filename(title, fmt))
