"""CSV roster import.

Maps spreadsheet exports onto generation participants and certificate rows
by header name:

    email                  -> email
    name                   -> name
    *date*                 -> date_of_event
    *event*                -> event_name
    category               -> category
    tags                   -> tags
    *url* / *attachment*   -> certificate_url

Headers are matched case-insensitively, first rule wins. Rows missing a
required value are skipped and counted.
"""

import csv
import io
from dataclasses import dataclass
from typing import Generic, TypeVar

from schemas import CertificateRow, Participant


class CsvImportError(Exception):
    """Raised when an upload is not a readable CSV with a header row."""


T = TypeVar("T")


@dataclass(frozen=True)
class ParsedCsv(Generic[T]):
    rows: list[T]
    skipped: int


def map_header(header: str) -> str | None:
    """Field name for a CSV header, or None for unrecognised columns."""
    key = header.strip().strip('"').lower()
    if key == "email":
        return "email"
    if key == "name":
        return "name"
    # Before "event": "Date of Event" is a date column
    if "date" in key:
        return "date_of_event"
    if "event" in key:
        return "event_name"
    if key == "category":
        return "category"
    if key == "tags":
        return "tags"
    if "url" in key or "attachment" in key:
        return "certificate_url"
    return None


def _decode(content: bytes | str) -> str:
    if isinstance(content, str):
        return content
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise CsvImportError("CSV file must be UTF-8 encoded") from e


def read_records(content: bytes | str) -> list[dict[str, str]]:
    """Read CSV rows as dicts keyed by mapped field name.

    Blank lines are ignored; cell values are trimmed.

    Raises:
        CsvImportError: If the file is empty or undecodable
    """
    reader = csv.reader(io.StringIO(_decode(content)))
    header = next((row for row in reader if any(c.strip() for c in row)), None)
    if header is None:
        raise CsvImportError("CSV file is empty")

    fields = [map_header(h) for h in header]
    records = []
    for row in reader:
        if not any(cell.strip() for cell in row):
            continue
        record: dict[str, str] = {}
        for field, value in zip(fields, row, strict=False):
            if field is not None and field not in record:
                record[field] = value.strip()
        records.append(record)
    return records


def _has(record: dict[str, str], *fields: str) -> bool:
    return all(record.get(field) for field in fields)


def parse_participants_csv(content: bytes | str) -> ParsedCsv[Participant]:
    """Generation input: rows need email, name and category."""
    records = read_records(content)
    rows = [
        Participant(email=r["email"], name=r["name"], category=r["category"])
        for r in records
        if _has(r, "email", "name", "category")
    ]
    return ParsedCsv(rows=rows, skipped=len(records) - len(rows))


def parse_certificates_csv(content: bytes | str) -> ParsedCsv[CertificateRow]:
    """Bulk certificate rows: need email, name, event name and link."""
    records = read_records(content)
    rows = [
        CertificateRow(**{k: v or None for k, v in r.items()})
        for r in records
        if _has(r, "email", "name", "event_name", "certificate_url")
    ]
    return ParsedCsv(rows=rows, skipped=len(records) - len(rows))
