"""Output formatting utilities for the appropriations engine.

Provides reusable functions for:
- Formatting currency amounts (whole dollars and congressional $K)
- Formatting percentages and rates
- Tabular and sectioned text report output
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, List, Dict, Any, Union

Number = Union[int, float, Decimal]


def format_amount(value: Optional[Number], precision: int = 0,
                  thousands_sep: bool = True) -> str:
    """Format a dollar amount for display.

    Args:
        value: Amount in dollars (can be None)
        precision: Decimal places (default: 0 for whole dollars)
        thousands_sep: Add thousands separator (default: True)

    Returns:
        Formatted string like "$1,234,567" or "-$500"

    Examples:
        format_amount(1234567) -> "$1,234,567"
        format_amount(1234567, precision=2) -> "$1,234,567.00"
        format_amount(None) -> "-"
    """
    if value is None:
        return "-"
    sign = "-" if value < 0 else ""
    magnitude = abs(Decimal(str(value)))
    if thousands_sep:
        return f"{sign}${magnitude:,.{precision}f}"
    return f"{sign}${magnitude:.{precision}f}"


def format_thousands(value: Optional[Number]) -> str:
    """Format a dollar amount in thousands with a "K" suffix.

    Congressional exhibits carry amounts in $K.  Values are rounded half-up
    to the nearest thousand.

    Examples:
        format_thousands(1234567) -> "$1,235K"
        format_thousands(-2500) -> "-$3K"
        format_thousands(None) -> "$0K"
    """
    if value is None:
        return "$0K"
    thousands = (Decimal(str(value)) / 1000).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    sign = "-" if thousands < 0 else ""
    return f"{sign}${abs(thousands):,}K"


def format_percent(value: Optional[Number], precision: int = 1) -> str:
    """Format a percentage for display.

    Args:
        value: Percentage value (0.0 to 100.0)
        precision: Decimal places (default: 1)

    Returns:
        Formatted string like "42.5%"

    Examples:
        format_percent(42.5) -> "42.5%"
        format_percent(None) -> "-"
    """
    if value is None:
        return "-"
    return f"{float(value):.{precision}f}%"


def percent_of(part: Number, whole: Number, precision: int = 2) -> Optional[float]:
    """Return ``part / whole * 100`` rounded, or None when ``whole`` is zero."""
    if not whole:
        return None
    return round(float(Decimal(str(part)) / Decimal(str(whole)) * 100), precision)


class TableFormatter:
    """Formats data as aligned tabular output."""

    def __init__(self, columns: List[str], column_widths: Optional[List[int]] = None):
        """Initialize table formatter.

        Args:
            columns: List of column headers
            column_widths: Optional list of column widths (auto-calculated if None)
        """
        self.columns = columns
        self.column_widths = column_widths or [len(col) for col in columns]
        self.rows: List[List[str]] = []

    def add_row(self, values: List[Any]) -> None:
        """Add a row to the table.

        Args:
            values: List of values matching column count

        Raises:
            ValueError: If value count doesn't match column count
        """
        if len(values) != len(self.columns):
            raise ValueError(f"Expected {len(self.columns)} values, got {len(values)}")

        str_values = []
        for i, val in enumerate(values):
            str_val = str(val) if val is not None else "-"
            str_values.append(str_val)
            if len(str_val) > self.column_widths[i]:
                self.column_widths[i] = len(str_val)

        self.rows.append(str_values)

    def _format_row(self, values: List[str], is_header: bool = False) -> str:
        cells = []
        for i, val in enumerate(values):
            width = self.column_widths[i]
            # Amount-looking cells are right-aligned
            if not is_header and val[:1] in "$-0123456789" and val != "-":
                cells.append(val.rjust(width))
            else:
                cells.append(val.ljust(width))
        return "  ".join(cells).rstrip()

    def to_string(self, show_header: bool = True, show_separator: bool = True) -> str:
        """Format table as multi-line string.

        Args:
            show_header: Include header row (default: True)
            show_separator: Add separator line after header (default: True)

        Returns:
            Formatted table as string
        """
        lines = []

        if show_header:
            lines.append(self._format_row(self.columns, is_header=True))
            if show_separator:
                lines.append("  ".join("-" * w for w in self.column_widths))

        for row in self.rows:
            lines.append(self._format_row(row))

        return "\n".join(lines)


class ReportFormatter:
    """Formats data as a structured report with sections."""

    def __init__(self, title: str = ""):
        """Initialize report formatter.

        Args:
            title: Report title
        """
        self.title = title
        self.sections: List[Dict[str, Any]] = []

    def add_section(self, heading: str, content: Any, level: int = 1) -> None:
        """Add a section to the report.

        Args:
            heading: Section heading
            content: Section content (string, list, dict, TableFormatter or callable)
            level: Heading level (1-3) for indentation
        """
        self.sections.append({
            "heading": heading,
            "content": content,
            "level": level
        })

    def _format_content(self, content: Any) -> List[str]:
        if isinstance(content, str):
            return [content] if content else []

        if isinstance(content, TableFormatter):
            return content.to_string().splitlines()

        if isinstance(content, (list, tuple)):
            return [f"  • {item}" for item in content]

        if isinstance(content, dict):
            return [f"  {key}: {value}" for key, value in content.items()]

        if callable(content):
            return self._format_content(content())

        return [str(content)]

    def to_string(self) -> str:
        """Format report as multi-line string."""
        lines = []

        if self.title:
            lines.append(self.title)
            lines.append("=" * len(self.title))
            lines.append("")

        for section in self.sections:
            heading = section["heading"]

            if section["level"] == 1:
                lines.append(heading)
                lines.append("-" * len(heading))
            elif section["level"] == 2:
                lines.append(f"  {heading}")
            else:
                lines.append(f"    • {heading}")

            lines.extend(self._format_content(section["content"]))
            lines.append("")

        return "\n".join(lines)
