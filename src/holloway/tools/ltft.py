"""Less-Than-Full-Time (LTFT) training calculator.

Works out the new CCT (Certificate of Completion of Training) date for an NHS
doctor changing their working-time percentage part-way through a programme.
The remaining time is stretched in proportion to the change in WTE:

    remaining = days from the proposed start date to the current CCT date
    adjusted  = ceil(remaining * current_wte / proposed_wte)
    new CCT   = current CCT + (adjusted - remaining) days
"""

from __future__ import annotations

import json
import math
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta, timezone
from fractions import Fraction
from typing import Any

from . import ToolDefinition, ToolExecutionError

STANDARD_WTES = (0.5, 0.6, 0.7, 0.8, 1.0)
SHORT_NOTICE = timedelta(weeks=16)

DEFINITION: dict[str, Any] = {
    "name": "ltft_calculator",
    "description": (
        "Calculates the new CCT (Certificate of Completion of Training) date for an NHS Doctor changing "
        "to Less Than Full Time (LTFT) training.\n\n"
        "IMPORTANT instructions for calling this tool:\n"
        "- All dates MUST be ISO 8601 (YYYY-MM-DD). UK dates like 04/05/2026 mean 4th May 2026; if the "
        "day/month order is genuinely ambiguous, ask the user BEFORE calling this tool.\n"
        "- All percentages MUST be decimals between 0 and 1 (80% -> 0.8, full-time -> 1.0).\n"
        "- The proposed_start_date cannot be in the past. Use get_current_datetime rather than guessing today.\n"
        "- Standard LTFT percentages are 50%, 60%, 70%, 80% (and 100% for return to full-time)."
    ),
    "parameters": {
        "type": "object",
        "properties": {
            "programme_name": {
                "type": "string",
                "description": "Name of the training programme (optional, defaults to 'Programme').",
            },
            "current_cct_date": {"type": "string", "description": "Current CCT date in YYYY-MM-DD format."},
            "current_work_percentage": {
                "type": "number",
                "description": "Current WTE as a decimal between 0 and 1 (e.g., 1.0 for full-time).",
            },
            "proposed_work_percentage": {
                "type": "number",
                "description": "Proposed WTE as a decimal between 0 and 1 (e.g., 0.8 for 80%).",
            },
            "proposed_start_date": {
                "type": "string",
                "description": "Date the proposed LTFT change starts, in YYYY-MM-DD format.",
            },
        },
        "required": [
            "current_cct_date",
            "current_work_percentage",
            "proposed_work_percentage",
            "proposed_start_date",
        ],
    },
}


@dataclass
class LtftResult:
    programme: str
    current_cct_date: str
    proposed_start_date: str
    current_wte: str
    proposed_wte: str
    remaining_days_in_current_period: int
    adjusted_days_at_new_wte: int
    extension_days: int
    new_cct_date: str
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        if not self.warnings:
            data.pop("warnings")
        return data


def _parse_date(value: Any, label: str) -> date:
    if not isinstance(value, str):
        raise ValueError(f"Invalid {label} {value!r}. Expected YYYY-MM-DD format.")
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValueError(f"Invalid {label} '{value}'. Expected YYYY-MM-DD format.") from None


def _check_wte(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be a number between 0 (exclusive) and 1 (inclusive). Got {value!r}.")
    if value <= 0 or value > 1:
        raise ValueError(f"{name} must be between 0 (exclusive) and 1 (inclusive). Got {value}.")
    return float(value)


def _pct(value: float) -> str:
    return f"{value * 100:.0f}%"


def calculate_ltft(
    current_cct_date: Any,
    current_wte: Any,
    proposed_wte: Any,
    proposed_start_date: Any,
    programme_name: str = "Programme",
    today: date | None = None,
) -> LtftResult:
    """Compute the new CCT date. Raises ValueError on invalid or inconsistent input."""
    cct = _parse_date(current_cct_date, "current CCT date")
    start = _parse_date(proposed_start_date, "proposed start date")
    wte_current = _check_wte(current_wte, "current_work_percentage")
    wte_proposed = _check_wte(proposed_wte, "proposed_work_percentage")
    today = today or datetime.now(timezone.utc).date()

    if start < today:
        raise ValueError(f"Proposed start date {start.isoformat()} is in the past.")
    if start > cct:
        raise ValueError(
            f"Proposed start date {start.isoformat()} is after the current CCT date {cct.isoformat()}."
        )

    warnings: list[str] = []
    if start - today < SHORT_NOTICE:
        warnings.append(
            "The proposed start date is within 16 weeks. This is classed as 'short notice' and will "
            "only be approved for exceptional circumstances."
        )
    if not any(abs(s - wte_proposed) < 0.01 for s in STANDARD_WTES):
        warnings.append(
            f"Proposed percentage {_pct(wte_proposed)} is not a standard LTFT percentage "
            "(50%, 60%, 70%, 80%, 100%). Non-standard percentages require Dean approval and are "
            "not usually approved."
        )

    remaining = (cct - start).days
    # Exact decimal arithmetic so 0.8 etc. don't round up an extra day.
    adjusted = math.ceil(Fraction(remaining) * Fraction(str(wte_current)) / Fraction(str(wte_proposed)))
    extension = adjusted - remaining

    return LtftResult(
        programme=programme_name or "Programme",
        current_cct_date=cct.isoformat(),
        proposed_start_date=start.isoformat(),
        current_wte=_pct(wte_current),
        proposed_wte=_pct(wte_proposed),
        remaining_days_in_current_period=remaining,
        adjusted_days_at_new_wte=adjusted,
        extension_days=extension,
        new_cct_date=(cct + timedelta(days=extension)).isoformat(),
        warnings=warnings,
    )


def build() -> ToolDefinition:
    async def execute(tool_input: dict[str, Any]) -> str:
        try:
            result = calculate_ltft(
                tool_input["current_cct_date"],
                tool_input["current_work_percentage"],
                tool_input["proposed_work_percentage"],
                tool_input["proposed_start_date"],
                programme_name=str(tool_input.get("programme_name") or "Programme"),
            )
        except ValueError as e:
            raise ToolExecutionError(str(e)) from e
        return json.dumps(result.to_dict(), indent=2)

    return ToolDefinition(
        name=DEFINITION["name"],
        description=DEFINITION["description"],
        input_schema=DEFINITION["parameters"],
        execute=execute,
    )
