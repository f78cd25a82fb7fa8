"""Best-effort extraction of a numeric cost from query-plan text."""

import re
from collections.abc import Iterable
from typing import Any

# "cost=<startup>..<total>" as printed by EXPLAIN; the total is captured
COST_PATTERN = re.compile(r"cost=(\d+(?:\.\d+)?)\.\.(\d+(?:\.\d+)?)")


def parse_plan_cost(plan_text: str | None) -> float:
    """Return the largest total cost reported in the plan text.

    Args:
        plan_text: Plan output, possibly spanning several lines.

    Returns:
        Maximum ``<total>`` of every ``cost=<startup>..<total>`` occurrence,
        or 0.0 when the text is empty or carries no cost figures.
    """
    if not plan_text:
        return 0.0
    totals = [float(match.group(2)) for match in COST_PATTERN.finditer(plan_text)]
    return max(totals, default=0.0)


def plan_text_from_rows(rows: Iterable[dict[str, Any]]) -> str:
    """Flatten the string columns of plan rows into one text block."""
    lines = []
    for row in rows:
        lines.extend(value for value in row.values() if isinstance(value, str))
    return "\n".join(lines)
