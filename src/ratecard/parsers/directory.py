"""
Parser for the workbook "directory" sheet.

Vendors often ship a table of contents sheet listing every product with its
channel code. Rate sheets themselves may only carry the product name, so the
directory acts as a name -> channel code cross-reference for the classifier.
"""
from __future__ import annotations

from dataclasses import dataclass, field
import difflib
import logging
import re

from ratecard.models import Sheet, Workbook
from ratecard.normalize import clean_key, normalize_text


logger = logging.getLogger(__name__)

DIRECTORY_SHEET_RE = re.compile(r"目录|索引|index|directory|contents|catalog", re.IGNORECASE)
CHANNEL_CODE_RE = re.compile(r"^[A-Z]{2}[A-Z0-9]+$")

_NAME_HEADERS = ("产品名称", "渠道名称", "服务名称", "产品", "名称", "product", "channel name", "service", "name")
_CODE_HEADERS = ("渠道代码", "产品代码", "运输代码", "代码", "编码", "code")

FUZZY_THRESHOLD = 0.80


@dataclass(frozen=True)
class DirectoryMatch:
    code: str
    product_name: str
    method: str
    score: float


@dataclass(frozen=True)
class ChannelDirectory:
    """Normalized product name -> channel code."""
    entries: dict[str, str] = field(default_factory=dict)
    names: dict[str, str] = field(default_factory=dict)
    source_sheet: str | None = None

    def __len__(self) -> int:
        return len(self.entries)

    def lookup(self, sheet_name: str) -> DirectoryMatch | None:
        if not self.entries:
            return None
        key = clean_key(sheet_name)
        if not key:
            return None

        if key in self.entries:
            return DirectoryMatch(code=self.entries[key], product_name=self.names[key], method="exact", score=1.0)

        # Several names can overlap the key; the closest one wins.
        hits = [name_key for name_key in self.entries if name_key in key or key in name_key]
        if hits:
            name_key = max(hits, key=lambda k: difflib.SequenceMatcher(None, key, k).ratio())
            return DirectoryMatch(
                code=self.entries[name_key], product_name=self.names[name_key], method="substring", score=0.95
            )

        best_key = None
        best_score = 0.0
        for name_key in self.entries:
            score = difflib.SequenceMatcher(None, key, name_key).ratio()
            if score > best_score:
                best_key, best_score = name_key, score
        if best_key is not None and best_score >= FUZZY_THRESHOLD:
            return DirectoryMatch(
                code=self.entries[best_key],
                product_name=self.names[best_key],
                method="fuzzy",
                score=round(best_score, 3),
            )
        return None


def find_directory_sheet(workbook: Workbook) -> Sheet | None:
    for sheet in workbook.sheets:
        if DIRECTORY_SHEET_RE.search(sheet.name):
            return sheet
    return None


def _as_code(text: str, strict: bool = False) -> str | None:
    """Code-shaped cell value. Strict mode (no header to go by) requires it to be written upper-case."""
    text = normalize_text(text)
    candidate = text.upper()
    if strict and candidate != text:
        return None
    if len(candidate) >= 4 and CHANNEL_CODE_RE.match(candidate):
        return candidate
    return None


def _find_col(headers: list[str], candidates: tuple[str, ...]) -> int | None:
    keys = [clean_key(h) for h in headers]
    for cand in candidates:
        cand_key = clean_key(cand)
        for i, key in enumerate(keys):
            if key and cand_key in key:
                return i
    return None


def _find_header(sheet: Sheet, scan_rows: int = 10) -> tuple[int, int, int] | None:
    for row in range(min(scan_rows, sheet.row_count)):
        headers = sheet.row_texts(row)
        code_col = _find_col(headers, _CODE_HEADERS)
        if code_col is None:
            continue
        name_col = _find_col([h if i != code_col else "" for i, h in enumerate(headers)], _NAME_HEADERS)
        if name_col is not None:
            return row, name_col, code_col
    return None


def parse_directory(sheet: Sheet | None) -> ChannelDirectory:
    if sheet is None:
        return ChannelDirectory()

    entries: dict[str, str] = {}
    names: dict[str, str] = {}

    def add(name: str, code: str) -> None:
        key = clean_key(name)
        if key and key not in entries:
            entries[key] = code
            names[key] = normalize_text(name)

    header = _find_header(sheet)
    if header is not None:
        header_row, name_col, code_col = header
        for row in range(header_row + 1, sheet.row_count):
            name = sheet.text(row, name_col)
            code = _as_code(sheet.text(row, code_col))
            if name and code:
                add(name, code)
    else:
        # No header: any row holding one code-shaped cell plus a name contributes a pair.
        for row in range(sheet.row_count):
            texts = [t for t in sheet.row_texts(row) if t]
            codes = [c for c in (_as_code(t, strict=True) for t in texts) if c]
            others = [t for t in texts if not _as_code(t, strict=True) and not t.replace(".", "").isdigit()]
            if len(codes) == 1 and others:
                add(others[0], codes[0])

    logger.debug("Directory sheet %r: %d entries", sheet.name, len(entries))
    return ChannelDirectory(entries=entries, names=names, source_sheet=sheet.name)
