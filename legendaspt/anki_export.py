"""Export phrases as Anki import files.

Anki's plain-text importer takes one note per line; the TSV form has no
header (Front, Back, Frequency), the CSV form has one.
"""

from __future__ import annotations

import csv
import io
from collections.abc import Iterable
from dataclasses import dataclass

CSV_HEADER = ["Front", "Back", "Frequency"]


@dataclass(frozen=True)
class ExportRow:
    phrase: str
    translation: str
    frequency: int = 1


def _clean(value: str) -> str:
    # Tabs and newlines would split an Anki field
    return " ".join(value.split())


def to_anki_tsv(rows: Iterable[ExportRow]) -> str:
    """Render rows as tab-separated notes, one per line."""
    return "\n".join(
        "\t".join([_clean(row.phrase), _clean(row.translation), str(row.frequency)])
        for row in rows
    )


def to_csv(rows: Iterable[ExportRow]) -> str:
    """Render rows as CSV with a Front/Back/Frequency header, all fields quoted."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for row in rows:
        writer.writerow([row.phrase, row.translation, row.frequency])
    return buffer.getvalue()
