"""CSV adapter for row imports.

Reads an export file into plain row mappings for the batch runner. Headers
are checked against the columns each import kind needs; value normalization
is left to the reconcilers so CSV and JSON rows go through the same code.
"""

from __future__ import annotations

import csv
from dataclasses import dataclass, field
from typing import IO, Iterator, Mapping, Sequence

from league_app.importer.pipeline.normalize import (
    PLAYER_HEADER_ALIASES,
    SHIFT_HEADER_ALIASES,
    VOLUNTEER_HEADER_ALIASES,
    normalize_header,
)
from league_app.models import ImportKind

HEADER_ALIASES: Mapping[ImportKind, Mapping[str, str]] = {
    ImportKind.PLAYERS: PLAYER_HEADER_ALIASES,
    ImportKind.VOLUNTEERS: VOLUNTEER_HEADER_ALIASES,
    ImportKind.SHIFTS: SHIFT_HEADER_ALIASES,
}

# Any one group member satisfies the requirement.
REQUIRED_HEADERS: Mapping[ImportKind, tuple[tuple[str, ...], ...]] = {
    ImportKind.PLAYERS: (("first_name",), ("last_name",)),
    ImportKind.VOLUNTEERS: (("email", "phone"),),
    ImportKind.SHIFTS: (("volunteer_name",), ("shift_date",)),
}


class CSVAdapterError(Exception):
    """Base exception for CSV adapter failures."""


class CSVHeaderError(CSVAdapterError):
    """Raised when the header row lacks the columns an import kind needs."""

    def __init__(self, kind: ImportKind, *, missing: Sequence[str]) -> None:
        super().__init__(
            f"CSV header validation failed for {kind.value}. Missing required columns: {', '.join(missing)}."
        )
        self.kind = kind
        self.missing = tuple(missing)


@dataclass
class CSVRowStatistics:
    rows_read: int = 0
    rows_skipped_blank: int = 0
    headers: tuple[str, ...] = field(default_factory=tuple)


def _sanitize_header(header: str | None) -> str:
    return (header or "").strip().lstrip("\ufeff")


def _row_is_blank(row: Mapping[str, object | None]) -> bool:
    return all(value is None or (isinstance(value, str) and value.strip() == "") for value in row.values())


def validate_headers(kind: ImportKind, headers: Sequence[str]) -> None:
    aliases = HEADER_ALIASES[kind]
    canonical = {aliases.get(normalize_header(header), normalize_header(header)) for header in headers}
    missing = [" or ".join(group) for group in REQUIRED_HEADERS[kind] if not canonical.intersection(group)]
    if missing:
        raise CSVHeaderError(kind, missing=missing)


class CSVRowReader:
    """Reads one import kind's export file into row mappings."""

    def __init__(self, file_obj: IO[str], kind: ImportKind | str, *, skip_blank_rows: bool = True) -> None:
        self._file_obj = file_obj
        self.kind = kind if isinstance(kind, ImportKind) else ImportKind(str(kind).strip().lower())
        self.skip_blank_rows = skip_blank_rows
        self.statistics = CSVRowStatistics()

    def iter_rows(self) -> Iterator[dict[str, object | None]]:
        reader = csv.DictReader(self._file_obj)
        if reader.fieldnames is None:
            raise CSVHeaderError(self.kind, missing=[" or ".join(group) for group in REQUIRED_HEADERS[self.kind]])
        headers = [_sanitize_header(header) for header in reader.fieldnames]
        validate_headers(self.kind, headers)
        reader.fieldnames = headers
        self.statistics.headers = tuple(headers)

        for raw_row in reader:
            row = {key: value for key, value in raw_row.items() if key}
            if self.skip_blank_rows and _row_is_blank(row):
                self.statistics.rows_skipped_blank += 1
                continue
            self.statistics.rows_read += 1
            yield row

    def read(self) -> list[dict[str, object | None]]:
        return list(self.iter_rows())


def read_csv_rows(file_obj: IO[str], kind: ImportKind | str) -> list[dict[str, object | None]]:
    return CSVRowReader(file_obj, kind).read()


__all__ = [
    "CSVAdapterError",
    "CSVHeaderError",
    "CSVRowReader",
    "CSVRowStatistics",
    "read_csv_rows",
    "validate_headers",
]
