"""
Folder-name parser.

PO folders are named by hand, e.g. ``2026-02-IT-001_CAPEX_Hello World``.
The parser pulls out category, IT reference number and title on a
best-effort basis and never raises: anything it cannot find falls back to a
default (CAPEX, IT-UNKNOWN, an empty title).
"""

from __future__ import annotations

import re
from dataclasses import dataclass

DELIMITER = "_"
DEFAULT_CATEGORY = "CAPEX"
UNKNOWN_REFERENCE = "IT-UNKNOWN"
CATEGORIES = ("CAPEX", "OPEX")

_REF_RE = re.compile(r"IT-\d+", re.IGNORECASE)


@dataclass(frozen=True)
class ParsedFolderName:
    category: str
    reference_number: str
    title: str

    def to_dict(self) -> dict:
        return {
            "capex_opex": self.category,
            "it_ref_no": self.reference_number,
            "title": self.title,
        }


def parse_folder_name(text) -> ParsedFolderName:
    """Split *text* on ``_`` and extract ``(category, reference_number, title)``.

    - category: CAPEX unless a token equals CAPEX/OPEX (case-insensitive);
      the last such token wins.
    - reference_number: first ``IT-<digits>`` anywhere in the text, uppercased.
    - title: tokens after the category token; without a category token,
      tokens after the first one (possibly none, giving an empty title).
      The original text is used only when there are no tokens at all.
    """
    raw = "" if text is None else str(text)
    tokens = [t.strip() for t in raw.split(DELIMITER)]
    tokens = [t for t in tokens if t]

    category = DEFAULT_CATEGORY
    category_index = None
    for i, token in enumerate(tokens):
        upper = token.upper()
        if upper in CATEGORIES:
            category = upper
            category_index = i

    match = _REF_RE.search(raw)
    reference = match.group(0).upper() if match else UNKNOWN_REFERENCE

    if category_index is not None:
        rest = tokens[category_index + 1:]
    else:
        rest = tokens[1:]
    title = " ".join(rest) if tokens else raw.strip()

    return ParsedFolderName(category=category, reference_number=reference, title=title)
