from __future__ import annotations
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Mapping, Optional
import math

from contotermico.incentive.models import FIELD_ORDER, PayloadError, SimulationInput

MIN_OLD_SYSTEM_YEAR = 1970


@dataclass(frozen=True)
class ValidationIssue:
    field: str    # dotted path into the input, e.g. "old_system.year"
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"field": self.field, "message": self.message}


def _positive(value) -> bool:
    return value is not None and math.isfinite(value) and value > 0


def _range_issues(values: Mapping[str, Any], current_year: int) -> List[ValidationIssue]:
    # only fields present in `values` are checked
    issues: List[ValidationIssue] = []

    if "costs.total_estimated_cost" in values and not _positive(values["costs.total_estimated_cost"]):
        issues.append(ValidationIssue("costs.total_estimated_cost", "Total estimated cost must be greater than 0"))

    if "old_system.year" in values and not (MIN_OLD_SYSTEM_YEAR <= values["old_system.year"] <= current_year):
        issues.append(ValidationIssue(
            "old_system.year",
            f"Installation year must be between {MIN_OLD_SYSTEM_YEAR} and {current_year}",
        ))

    if "old_system.estimated_power_kw" in values and not _positive(values["old_system.estimated_power_kw"]):
        issues.append(ValidationIssue("old_system.estimated_power_kw", "Estimated power must be greater than 0 kW"))

    if "new_system.power_kw" in values and not _positive(values["new_system.power_kw"]):
        issues.append(ValidationIssue("new_system.power_kw", "New system power must be greater than 0 kW"))

    return issues


def validate_input(inp: SimulationInput, today: Optional[date] = None) -> List[ValidationIssue]:
    """Range checks on the numeric fields; an empty list means valid.

    Every check runs. Enumeration membership is not checked here: the types
    are closed and `SimulationInput.from_dict` rejects unknown values.
    """
    values = {
        "costs.total_estimated_cost": inp.costs.total_estimated_cost,
        "old_system.year": inp.old_system.year,
        "old_system.estimated_power_kw": inp.old_system.estimated_power_kw,
        "new_system.power_kw": inp.new_system.power_kw,
    }
    return _range_issues(values, (today or date.today()).year)


def _field_rank(field: str) -> int:
    # a section name ranks with its first field, "payload" before everything
    for i, path in enumerate(FIELD_ORDER):
        if path == field or path.startswith(field + "."):
            return i
    return -1


def validate_payload(payload: Mapping[str, Any], today: Optional[date] = None) -> List[ValidationIssue]:
    """Validate a raw JSON payload.

    Parse failures and range failures are reported together, one issue per
    field, in field order. A payload that parses yields `validate_input`.
    """
    try:
        inp = SimulationInput.from_dict(payload)
    except PayloadError as e:
        issues = [ValidationIssue(field, message) for field, message in e.errors]
        issues.extend(_range_issues(e.parsed, (today or date.today()).year))
        return sorted(issues, key=lambda i: _field_rank(i.field))
    return validate_input(inp, today=today)
