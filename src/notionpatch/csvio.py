"""CSV import/export of page properties.

The first column is always ``_notion_id``; the remaining columns are
property names. Values are plain text; see remote.properties for how they
map onto Notion property payloads.
"""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from notionpatch.errors import ValidationError
from notionpatch.remote.properties import property_to_text

ID_COLUMN = "_notion_id"


@dataclass
class CsvRow:
    id: Optional[str] = None
    properties: Dict[str, str] = field(default_factory=dict)


def csv_to_rows(text: str) -> List[CsvRow]:
    """Parse CSV text with a header row. Blank lines are skipped."""
    reader = csv.reader(io.StringIO(text.lstrip("\ufeff")))
    try:
        header = next(reader)
    except StopIteration:
        return []
    header = [name.strip() for name in header]
    if not any(header):
        raise ValidationError("CSV header row is empty.")

    rows: List[CsvRow] = []
    for line_no, record in enumerate(reader, start=2):
        if not record or all(not cell.strip() for cell in record):
            continue
        if len(record) > len(header):
            raise ValidationError(
                f"CSV line {line_no} has {len(record)} fields but the header has {len(header)}."
            )
        row = CsvRow()
        for name, value in zip(header, record):
            if name == ID_COLUMN:
                row.id = value.strip() or None
            elif name:
                row.properties[name] = value
        rows.append(row)
    return rows


def rows_to_csv(pages: Iterable[Mapping[str, Any]], columns: Sequence[str]) -> str:
    """Render pages (``{"id", "properties"}``) as CSV with the given columns."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow([ID_COLUMN, *columns])
    for page in pages:
        props = page.get("properties") or {}
        writer.writerow(
            [page.get("id", ""), *(property_to_text(props.get(col)) for col in columns)]
        )
    return buf.getvalue()
