from typing import Any, List, Literal, Optional

PRICE_ON_REQUEST = "Price on request"

_ALIGN_MARKERS = {
    "l": ":---",
    "c": ":---:",
    "r": "---:",
}


def _cell(value: Any) -> str:
    if value is None:
        return ""
    # pipes would split the cell
    return str(value).replace("|", "\\|").replace("\n", " ")


def generate_markdown_table(
    headers: Optional[List[str]],
    rows: List[List[Any]],
    aligns: Optional[List[Literal["l", "c", "r"]]] = None,
) -> str:
    """
    Generate a Markdown table.

    Args:
        headers: List of column headers, or None to use first row as headers.
        rows: List of rows; None cells render empty.
        aligns: List of alignments ('l', 'c', 'r') for each column.
                Defaults to all left ('l').

    Returns:
        str: Markdown formatted table, "" when there is nothing to show.
    """
    if not rows and not headers:
        return ""

    if not headers:
        headers, rows = rows[0], rows[1:]

    header_cells = [_cell(h) for h in headers]
    if aligns is None:
        aligns = ["l"] * len(header_cells)
    elif len(aligns) != len(header_cells):
        raise ValueError("Length of aligns must match number of headers.")

    lines = [
        "| " + " | ".join(header_cells) + " |",
        "| " + " | ".join(_ALIGN_MARKERS[a] for a in aligns) + " |",
    ]
    lines.extend("| " + " | ".join(_cell(c) for c in row) + " |" for row in rows)
    return "\n".join(lines)


def format_price(price: Optional[float]) -> str:
    """Two decimals with thousands separators; None is "Price on request"."""
    if price is None:
        return PRICE_ON_REQUEST
    return f"{price:,.2f}"


def format_weight(weight: Optional[float]) -> str:
    if weight is None:
        return ""
    return f"{weight:g} kg"


def format_total(known_total: float, has_unknown_prices: bool) -> str:
    text = format_price(known_total)
    if has_unknown_prices:
        text += " + price on request items"
    return text
