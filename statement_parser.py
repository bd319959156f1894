"""
statement_parser.py

This module turns a brokerage "資産残高" CSV export into a flat list of
``Holding`` records.  The statement is not a plain CSV file: it is a
sequence of sections, each introduced by a title line, and only the
holdings section (anchored by ``保有商品詳細``) is of interest.  The
file carries no charset declaration, so the text encoding is found by
trying a fixed list of candidates and keeping the first one whose text
contains the anchor.

Parsing happens in five steps, each a separate function so that it can
be tested in isolation:

1. ``resolve_encoding``: bytes to text.
2. ``split_lines`` / ``parse_csv_line``: text to lines, line to fields.
3. ``locate_section`` / ``resolve_columns``: find the anchor line and map
   the header row onto the five required fields using ordered synonym
   lists (see ``config/column_mapping.json``).
4. ``extract_holdings``: walk the data rows, dropping marker lines, short
   rows and rows with bad amounts without raising.
5. ``parse_statement`` / ``parse_file``: the orchestrators.

File-level failures raise ``StatementParseError`` with a closed
``ParseErrorKind``; row-level problems never raise.
"""

###############################################################################
# Metadata
#
# @file        statement_parser.py
# @brief       Encoding detection, tokenizing and holdings extraction
# @created     2025-10-07
# @modified    2025-11-02
#
# The column synonyms, candidate encodings and section anchor can be
# overridden through ``config/column_mapping.json`` and
# ``config/default_settings.json``; see ``load_statement_format``.
###############################################################################

from __future__ import annotations

import asyncio
import enum
import json
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from portfolio_logging import audit, get_logger
from portfolio_models import Holding

logger = get_logger(__name__)

SECTION_ANCHOR = "保有商品詳細"
SECTION_MARKER = "■"
DEFAULT_ENCODINGS: Tuple[str, ...] = ("utf-8", "cp932", "euc-jp")

# Field name -> header spellings, in priority order.  Statement layouts
# differ between the old and new export versions for name and value.
DEFAULT_COLUMN_SYNONYMS: Dict[str, Tuple[str, ...]] = {
    "type": ("種別",),
    "name": ("銘柄名", "銘柄"),
    "account": ("口座",),
    "value": ("評価額", "時価評価額[円]"),
    "gain_loss": ("評価損益[円]", "評価損益"),
}
REQUIRED_FIELDS: Tuple[str, ...] = ("type", "name", "account", "value", "gain_loss")

_INT_PREFIX = re.compile(r"\s*([+-]?[0-9]+)")


# -------------------------------------------------------------------------
# Errors
#
class ParseErrorKind(enum.Enum):
    DECODING_FAILED = "decoding_failed"
    HEADER_MISSING = "header_missing"
    COLUMNS_MISSING = "columns_missing"
    EMPTY_RESULT = "empty_result"


class StatementParseError(ValueError):
    """A statement could not be turned into holdings.

    Attributes:
        kind: Which stage failed.
        file_name: Name of the offending file, when known.
    """

    kind: ParseErrorKind

    def __init__(self, message: str, *, file_name: Optional[str] = None) -> None:
        super().__init__(message)
        self.file_name = file_name


class DecodingFailed(StatementParseError):
    kind = ParseErrorKind.DECODING_FAILED

    def __init__(self, anchor: str, encodings: Sequence[str], *, file_name: Optional[str] = None) -> None:
        super().__init__(
            f"Section '{anchor}' not found with any of the encodings "
            f"{', '.join(encodings)}; make sure the file is a holdings (資産残高) CSV export",
            file_name=file_name,
        )
        self.anchor = anchor
        self.encodings = tuple(encodings)


class HeaderMissing(StatementParseError):
    kind = ParseErrorKind.HEADER_MISSING

    def __init__(self, anchor: str, *, file_name: Optional[str] = None) -> None:
        super().__init__(f"No header row follows the '{anchor}' line", file_name=file_name)
        self.anchor = anchor


class ColumnsMissing(StatementParseError):
    kind = ParseErrorKind.COLUMNS_MISSING

    def __init__(self, missing: Sequence[Sequence[str]], *, file_name: Optional[str] = None) -> None:
        self.missing = tuple(tuple(group) for group in missing)
        super().__init__(
            f"Required columns not found: {format_missing_columns(self.missing)}",
            file_name=file_name,
        )


class EmptyResult(StatementParseError):
    kind = ParseErrorKind.EMPTY_RESULT

    def __init__(self, file_name: str) -> None:
        super().__init__(f"No holdings could be read from '{file_name}'", file_name=file_name)


def format_missing_columns(missing: Iterable[Sequence[str]]) -> str:
    """Join synonym groups with ``/`` inside a group and ``, `` across groups."""
    return ", ".join("/".join(group) for group in missing)


# -------------------------------------------------------------------------
# Configuration
#
@dataclass(frozen=True)
class StatementFormat:
    """Everything the parser needs to know about one statement layout."""

    anchor: str = SECTION_ANCHOR
    encodings: Tuple[str, ...] = DEFAULT_ENCODINGS
    section_marker: str = SECTION_MARKER
    delimiter: str = ","
    quote: str = '"'
    thousands_separators: Tuple[str, ...] = (",",)
    column_synonyms: Dict[str, Tuple[str, ...]] = field(
        default_factory=lambda: dict(DEFAULT_COLUMN_SYNONYMS)
    )


def load_column_mapping(config_path: Optional[str]) -> Dict[str, Tuple[str, ...]]:
    """Load the ordered header synonyms for each required field.

    The configuration file is a JSON object mapping a field name
    (``type``, ``name``, ``account``, ``value``, ``gain_loss``) to the
    list of header spellings to try, first match wins.  Fields absent
    from the file keep their built-in synonyms; unknown field names are
    ignored with a warning.

    The location may be overridden via the ``COLUMN_MAPPING_CONFIG``
    environment variable.  A missing file yields the built-in mapping.

    Args:
        config_path: Default path to the JSON configuration file.

    Returns:
        A dictionary of field name to a tuple of header spellings.

    Raises:
        ValueError: If the file exists but is not valid JSON of the
            expected shape.
    """
    env_path = os.getenv("COLUMN_MAPPING_CONFIG")
    if env_path:
        config_path = env_path
    mapping = dict(DEFAULT_COLUMN_SYNONYMS)
    if not config_path or not os.path.isfile(config_path):
        logger.debug(f"Column mapping config not found at {config_path}; using built-in synonyms")
        return mapping
    with open(config_path, "r", encoding="utf-8") as f:
        try:
            raw_map = json.load(f)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid column mapping config {config_path}: {exc}") from exc
    if not isinstance(raw_map, dict):
        raise ValueError(f"Column mapping config {config_path} must be a JSON object")
    for key, value in raw_map.items():
        if key not in mapping:
            logger.warning(f"Ignoring unknown field '{key}' in column mapping {config_path}")
            continue
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, list):
            raise ValueError(
                f"Column mapping for '{key}' in {config_path} must be a string or a list of strings"
            )
        synonyms = tuple(str(v).strip() for v in value if str(v).strip())
        if synonyms:
            mapping[key] = synonyms
    audit(f"Loaded column mapping from {config_path} for {len(raw_map)} field(s)")
    return mapping


def load_statement_format(
    config_path: Optional[str] = None,
    encodings: Optional[Sequence[str]] = None,
) -> StatementFormat:
    """Build a ``StatementFormat`` from the column mapping config.

    Args:
        config_path: Path to the column mapping JSON (may be missing).
        encodings: Optional override of the candidate encodings, in order.
    """
    return StatementFormat(
        encodings=tuple(encodings) if encodings else DEFAULT_ENCODINGS,
        column_synonyms=load_column_mapping(config_path),
    )


# -------------------------------------------------------------------------
# Decoding and tokenizing
#
def resolve_encoding(data: bytes, fmt: StatementFormat) -> Tuple[str, str]:
    """Decode ``data`` with the first encoding whose text holds the anchor.

    Decoding is lenient: undecodable bytes become U+FFFD instead of
    raising, so a wrong candidate simply fails to produce the anchor.

    Returns:
        A ``(text, encoding)`` tuple.

    Raises:
        DecodingFailed: If no candidate yields the anchor.
    """
    for encoding in fmt.encodings:
        try:
            text = data.decode(encoding, errors="replace")
        except LookupError:
            logger.warning(f"Unknown encoding '{encoding}' skipped")
            continue
        if fmt.anchor in text:
            logger.debug(f"Decoded statement as {encoding}")
            return text, encoding
        logger.debug(f"Anchor not found when decoding as {encoding}")
    raise DecodingFailed(fmt.anchor, fmt.encodings)


def split_lines(text: str) -> List[str]:
    """Split decoded text into non-blank lines.

    A single leading byte-order mark is removed from the whole text
    first.  Both CRLF and LF line endings are accepted.
    """
    if text.startswith("\ufeff"):
        text = text[1:]
    return [line for line in re.split(r"\r\n|\n", text) if line.strip() != ""]


def parse_csv_line(line: str, delimiter: str = ",", quote: str = '"') -> List[str]:
    """Split one CSV line into fields.

    A quote opens and closes quoting; inside quotes a doubled quote is a
    literal quote and the delimiter is plain text.  An unterminated
    quote runs to the end of the line.  The last field is always
    emitted, so ``"a,"`` gives ``["a", ""]``.
    """
    result: List[str] = []
    current: List[str] = []
    in_quotes = False
    i = 0
    n = len(line)
    while i < n:
        char = line[i]
        if in_quotes:
            if char == quote:
                if i + 1 < n and line[i + 1] == quote:
                    current.append(quote)
                    i += 1
                else:
                    in_quotes = False
            else:
                current.append(char)
        elif char == quote:
            in_quotes = True
        elif char == delimiter:
            result.append("".join(current))
            current = []
        else:
            current.append(char)
        i += 1
    result.append("".join(current))
    return result


# -------------------------------------------------------------------------
# Section and header
#
def locate_section(lines: Sequence[str], anchor: str) -> int:
    """Return the index of the first line containing ``anchor``, or -1."""
    for idx, line in enumerate(lines):
        if anchor in line:
            return idx
    return -1


def find_header_index(headers: Sequence[str], possible_names: Iterable[str]) -> int:
    """Return the position of the first synonym present in ``headers``.

    Synonyms are tried in order; the first one found wins even if a
    later synonym appears earlier in the row.
    """
    for name in possible_names:
        try:
            return list(headers).index(name)
        except ValueError:
            continue
    return -1


def resolve_columns(header_line: str, fmt: StatementFormat) -> Dict[str, int]:
    """Map each required field onto its column index in the header row.

    Raises:
        ColumnsMissing: Listing every synonym group that did not match.
    """
    headers = [h.strip() for h in parse_csv_line(header_line, fmt.delimiter, fmt.quote)]
    columns: Dict[str, int] = {}
    missing: List[Tuple[str, ...]] = []
    for field_name in REQUIRED_FIELDS:
        synonyms = fmt.column_synonyms.get(field_name, DEFAULT_COLUMN_SYNONYMS[field_name])
        idx = find_header_index(headers, synonyms)
        if idx == -1:
            missing.append(tuple(synonyms))
        else:
            columns[field_name] = idx
    if missing:
        raise ColumnsMissing(missing)
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(f"Resolved columns {columns} from header {headers}")
    return columns


# -------------------------------------------------------------------------
# Extraction
#
def parse_amount(text: Optional[str], separators: Iterable[str] = (",",)) -> Optional[int]:
    """Parse a yen amount such as ``"1,234,567"`` or ``"-8,000"``.

    Grouping separators are removed, then the leading integer is read:
    an optional sign followed by ASCII digits.  Trailing text after the
    digits is ignored (``"12円"`` is 12).  Returns ``None`` for empty or
    non-numeric input.
    """
    if text is None:
        return None
    cleaned = text
    for sep in separators:
        cleaned = cleaned.replace(sep, "")
    match = _INT_PREFIX.match(cleaned)
    if not match:
        return None
    return int(match.group(1))


def extract_holdings(
    lines: Sequence[str],
    first_row: int,
    columns: Dict[str, int],
    file_name: str,
    fmt: StatementFormat,
) -> List[Holding]:
    """Build holdings from the data rows starting at ``first_row``.

    Rows starting with the section marker, rows with too few fields and
    rows with a bad amount or an empty type, name or account are
    dropped.  Each kept row gets the id ``csv_<file_name>_<line index>``.
    """
    min_fields = max(columns.values()) + 1
    holdings: List[Holding] = []
    skipped = {"marker": 0, "short": 0, "invalid": 0}
    for i in range(first_row, len(lines)):
        line = lines[i]
        if line.startswith(fmt.section_marker):
            skipped["marker"] += 1
            continue
        cells = [c.strip() for c in parse_csv_line(line, fmt.delimiter, fmt.quote)]
        if len(cells) < min_fields:
            skipped["short"] += 1
            continue
        value = parse_amount(cells[columns["value"]], fmt.thousands_separators)
        gain_loss = parse_amount(cells[columns["gain_loss"]], fmt.thousands_separators)
        asset_type = cells[columns["type"]]
        name = cells[columns["name"]]
        account = cells[columns["account"]]
        if value is None or gain_loss is None or not (asset_type and name and account):
            skipped["invalid"] += 1
            continue
        holdings.append(
            Holding(
                id=f"csv_{file_name}_{i}",
                type=asset_type,
                name=name,
                account=account,
                value=value,
                gain_loss=gain_loss,
            )
        )
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            f"Extracted {len(holdings)} holding(s) from {file_name}; skipped "
            f"{skipped['marker']} marker, {skipped['short']} short and {skipped['invalid']} invalid row(s)"
        )
    return holdings


# -------------------------------------------------------------------------
# Orchestrators
#
def parse_statement(data: bytes, file_name: str, fmt: Optional[StatementFormat] = None) -> List[Holding]:
    """Parse the raw bytes of one statement into holdings.

    Args:
        data: Entire file contents.
        file_name: Base name of the file, used in ids and messages.
        fmt: Statement layout; the built-in layout when omitted.

    Returns:
        The extracted holdings, in file order.  Never empty.

    Raises:
        StatementParseError: One of ``DecodingFailed``, ``HeaderMissing``,
            ``ColumnsMissing`` or ``EmptyResult``, with ``file_name`` set.
    """
    fmt = fmt or StatementFormat()
    try:
        text, encoding = resolve_encoding(data, fmt)
        lines = split_lines(text)
        start = locate_section(lines, fmt.anchor)
        if start == -1:
            raise DecodingFailed(fmt.anchor, (encoding,))
        if start + 1 >= len(lines):
            raise HeaderMissing(fmt.anchor)
        columns = resolve_columns(lines[start + 1], fmt)
    except StatementParseError as exc:
        exc.file_name = file_name
        logger.error(f"Failed to parse {file_name}: {exc}")
        raise
    audit(f"Statement {file_name} decoded as {encoding}; holdings header at line {start + 1}")
    holdings = extract_holdings(lines, start + 2, columns, file_name, fmt)
    if not holdings:
        logger.error(f"No holdings extracted from {file_name}")
        raise EmptyResult(file_name)
    audit(f"Extracted {len(holdings)} holding(s) from {file_name}")
    return holdings


def _validate_input_path(path: str) -> None:
    if not os.path.isfile(path):
        logger.error(f"Input file not found: {path}")
        raise FileNotFoundError(f"Input file not found: {path}")
    ext = os.path.splitext(path)[1].lower()
    if ext != ".csv":
        logger.error(f"Unsupported file extension: {ext}")
        raise ValueError(f"Unsupported file extension: {ext}")


def _read_bytes(path: str) -> bytes:
    with open(path, "rb") as fh:
        return fh.read()


async def parse_file(
    path: str,
    display_name: Optional[str] = None,
    fmt: Optional[StatementFormat] = None,
) -> List[Holding]:
    """Read a statement file without blocking the event loop and parse it.

    Args:
        path: Path to a ``.csv`` statement.
        display_name: Name used in ids and messages; the base name of
            ``path`` when omitted.
        fmt: Statement layout; the built-in layout when omitted.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ValueError: If the extension is not ``.csv``.
        StatementParseError: See ``parse_statement``.
    """
    _validate_input_path(path)
    file_name = display_name or os.path.basename(path)
    logger.debug(f"Reading statement {path}")
    data = await asyncio.to_thread(_read_bytes, path)
    return parse_statement(data, file_name, fmt)


__all__ = [
    "SECTION_ANCHOR",
    "SECTION_MARKER",
    "DEFAULT_ENCODINGS",
    "DEFAULT_COLUMN_SYNONYMS",
    "ParseErrorKind",
    "StatementParseError",
    "DecodingFailed",
    "HeaderMissing",
    "ColumnsMissing",
    "EmptyResult",
    "format_missing_columns",
    "StatementFormat",
    "load_column_mapping",
    "load_statement_format",
    "resolve_encoding",
    "split_lines",
    "parse_csv_line",
    "locate_section",
    "find_header_index",
    "resolve_columns",
    "parse_amount",
    "extract_holdings",
    "parse_statement",
    "parse_file",
]
