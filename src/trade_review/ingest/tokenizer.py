from __future__ import annotations

COMMA = ","
TAB = "\t"
QUOTE = '"'


def split_rows(raw_text: str) -> list[list[str]]:
    """Split an export into cell rows; the first row is the header.

    Returns an empty list unless there is a header plus at least one data row.
    """
    lines = [line.strip() for line in (raw_text or "").split("\n") if line.strip()]
    if len(lines) < 2:
        return []
    delimiter = detect_delimiter(lines[0])
    return [split_line(line, delimiter) for line in lines]


def detect_delimiter(header_line: str) -> str:
    if len(header_line.split(TAB)) > len(header_line.split(COMMA)):
        return TAB
    return COMMA


def split_line(line: str, delimiter: str) -> list[str]:
    cells: list[str] = []
    current: list[str] = []
    in_quotes = False
    for char in line:
        if char == QUOTE:
            in_quotes = not in_quotes
            continue
        if char == delimiter and not in_quotes:
            cells.append("".join(current).strip())
            current = []
            continue
        current.append(char)
    cells.append("".join(current).strip())
    return cells
