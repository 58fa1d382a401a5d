"""Quote-aware delimited text tokenizer.

This module splits CSV/TSV/semicolon exports into trimmed rows and
provides case-insensitive header lookup for tolerant column access.
"""

from __future__ import annotations

import re
from typing import Sequence

_BYTE_ORDER_MARK = "﻿"
_DELIMITER_PRIORITY = (";", "\t")
_DEFAULT_DELIMITER = ","
_LINE_BREAK_PATTERN = re.compile(r"\r?\n")


def tokenize(text: str, delimiter: str | None = None) -> list[list[str]]:
    """Split delimited text into rows of trimmed fields.

    Quoted fields may contain delimiters, line breaks, and doubled quotes.
    Blank lines are dropped, as is the empty field left by a trailing
    delimiter.

    Args:
        text: Raw export text, optionally BOM-prefixed.
        delimiter: Field delimiter; detected from the first line when omitted.

    Returns:
        Ordered rows, each an ordered list of fields.
    """
    clean_text = text[1:] if text.startswith(_BYTE_ORDER_MARK) else text
    active_delimiter = delimiter or detect_delimiter(clean_text)
    rows: list[list[str]] = []
    fields: list[str] = []
    field_chars: list[str] = []
    in_quotes = False
    index = 0
    text_length = len(clean_text)
    while index < text_length:
        char = clean_text[index]
        if in_quotes:
            if char == '"' and index + 1 < text_length and clean_text[index + 1] == '"':
                field_chars.append('"')
                index += 1
            elif char == '"':
                in_quotes = False
            else:
                field_chars.append(char)
        elif char == '"':
            in_quotes = True
        elif char == active_delimiter:
            fields.append("".join(field_chars).strip())
            field_chars = []
        elif char in "\r\n":
            _finish_row(rows, fields, field_chars)
            fields = []
            field_chars = []
            if char == "\r" and index + 1 < text_length and clean_text[index + 1] == "\n":
                index += 1
        else:
            field_chars.append(char)
        index += 1
    _finish_row(rows, fields, field_chars)
    return rows


def detect_delimiter(text: str) -> str:
    """Pick the delimiter from the first line: semicolon, tab, then comma."""
    first_line = _LINE_BREAK_PATTERN.split(text, maxsplit=1)[0]
    for candidate in _DELIMITER_PRIORITY:
        if candidate in first_line:
            return candidate
    return _DEFAULT_DELIMITER


def _finish_row(rows: list[list[str]], fields: list[str], field_chars: list[str]) -> None:
    last_field = "".join(field_chars).strip()
    if last_field or not fields:
        fields.append(last_field)
    if len(fields) > 1 or fields[0] != "":
        rows.append(fields)


class HeaderMap:
    """Case-insensitive column lookup built from a header row."""

    def __init__(self, headers: Sequence[str]) -> None:
        self._positions = {header.strip().lower(): index for index, header in enumerate(headers)}

    def has(self, name: str) -> bool:
        """Return whether the header row contains a column."""
        return name.strip().lower() in self._positions

    def get(self, row: Sequence[str], name: str) -> str:
        """Return the trimmed field for a column, or ``""`` when absent."""
        index = self._positions.get(name.strip().lower())
        if index is None or index >= len(row):
            return ""
        return row[index].strip()


def split_header(rows: list[list[str]]) -> tuple[HeaderMap, list[list[str]]]:
    """Split tokenized rows into a header map and data rows."""
    if not rows:
        return HeaderMap(()), []
    return HeaderMap(rows[0]), rows[1:]
