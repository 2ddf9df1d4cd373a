from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Type, TypeVar
import math


class UserType(str, Enum):
    PRIVATE = "privato"
    BUSINESS = "azienda"
    PUBLIC_ENTITY = "ente_pubblico"


class ClimateZone(str, Enum):
    A = "A"
    B = "B"
    C = "C"
    D = "D"
    E = "E"
    F = "F"


class OldSystemType(str, Enum):
    GAS = "gas"
    LPG = "gpl"
    HEATING_OIL = "gasolio"
    BIOMASS = "biomassa"


class NewSystemType(str, Enum):
    HEAT_PUMP = "pompa_di_calore"
    BIOMASS = "biomassa"
    SOLAR_THERMAL = "solare_termico"
    HYBRID = "ibrido"


class EfficiencyClass(str, Enum):
    # declared low -> high
    A_PLUS = "A+"
    A_PLUS_2 = "A++"
    A_PLUS_3 = "A+++"


class PaymentMode(str, Enum):
    SINGLE_PAYMENT = "unica_soluzione"
    ANNUAL_INSTALLMENTS = "rate_annuali"


E = TypeVar("E", bound=Enum)


class PayloadError(ValueError):
    """One or more fields of a payload could not be parsed.

    `errors` holds (field, message) pairs in field order; `parsed` holds the
    values of the fields that did parse, keyed by dotted path.
    """

    def __init__(self, errors: List[Tuple[str, str]], parsed: Optional[Dict[str, Any]] = None):
        self.errors = list(errors)
        self.parsed = dict(parsed or {})
        super().__init__("; ".join(f"{f}: {m}" for f, m in self.errors))


def _enum(enum_cls: Type[E], value: Any) -> E:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValueError(f"{value!r} is not one of [{allowed}]") from None


def parse_enum(enum_cls: Type[E], value: Any, field: str) -> E:
    """Convert a wire string to a member of a closed enumeration.

    Raises ValueError naming the field when the value is outside the set.
    """
    try:
        return _enum(enum_cls, value)
    except ValueError as e:
        raise ValueError(f"{field}: {e}") from None


def _number(value: Any, integral: bool = False):
    if value is None:
        raise ValueError("value is required")
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError(f"expected a number, got {value!r}")
    try:
        number = float(value)
    except (ValueError, OverflowError):
        raise ValueError(f"expected a number, got {value!r}") from None
    if not math.isfinite(number):
        raise ValueError(f"expected a finite number, got {value!r}")
    if not integral:
        return number
    if not number.is_integer():
        raise ValueError(f"expected a whole number, got {value!r}")
    return value if isinstance(value, int) else int(number)


def _flag(value: Any) -> bool:
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ValueError(f"expected true or false, got {value!r}")
    return value


# dotted path -> parser, in the order issues are reported
FIELD_PARSERS: Tuple[Tuple[str, Callable[[Any], Any]], ...] = (
    ("user_type", lambda v: _enum(UserType, v)),
    ("climate_zone", lambda v: _enum(ClimateZone, v)),
    ("costs.total_estimated_cost", _number),
    ("old_system.type", lambda v: _enum(OldSystemType, v)),
    ("old_system.year", lambda v: _number(v, integral=True)),
    ("old_system.estimated_power_kw", _number),
    ("new_system.type", lambda v: _enum(NewSystemType, v)),
    ("new_system.power_kw", _number),
    ("new_system.has_storage", _flag),
    ("new_system.efficiency_class", lambda v: _enum(EfficiencyClass, v)),
)
FIELD_ORDER = tuple(path for path, _ in FIELD_PARSERS)


def parse_fields(payload: Any) -> Tuple[Dict[str, Any], List[Tuple[str, str]]]:
    """Parse every field independently.

    Returns (parsed values by dotted path, [(field, message)] errors). A
    missing or non-object section is reported once under the section name.
    """
    if not isinstance(payload, Mapping):
        return {}, [("payload", "object is required")]
    parsed: Dict[str, Any] = {}
    errors: List[Tuple[str, str]] = []
    bad_sections = set()
    for path, parse in FIELD_PARSERS:
        section, _, key = path.rpartition(".")
        container = payload
        if section:
            container = payload.get(section)
            if not isinstance(container, Mapping):
                if section not in bad_sections:
                    bad_sections.add(section)
                    errors.append((section, "object is required"))
                continue
        try:
            parsed[path] = parse(container.get(key))
        except ValueError as e:
            errors.append((path, str(e)))
    return parsed, errors


@dataclass(frozen=True)
class OldSystem:
    type: OldSystemType
    year: int  # installation year
    estimated_power_kw: float


@dataclass(frozen=True)
class NewSystem:
    type: NewSystemType
    power_kw: float
    has_storage: bool  # carried for the form, not used by the formula
    efficiency_class: EfficiencyClass


@dataclass(frozen=True)
class Costs:
    total_estimated_cost: float


@dataclass(frozen=True)
class SimulationInput:
    user_type: UserType
    climate_zone: ClimateZone
    old_system: OldSystem
    new_system: NewSystem
    costs: Costs

    @staticmethod
    def from_dict(payload: Mapping[str, Any]) -> "SimulationInput":
        """Build an input from the nested JSON shape posted by the web form.

        Enumerations are checked for membership here, numbers must be finite
        and the year whole; numeric ranges are left to
        `contotermico.validation.rules.validate_input`. Raises PayloadError
        listing every field that failed.
        """
        v, errors = parse_fields(payload)
        if errors:
            raise PayloadError(errors, v)
        return SimulationInput(
            user_type=v["user_type"],
            climate_zone=v["climate_zone"],
            old_system=OldSystem(
                type=v["old_system.type"],
                year=v["old_system.year"],
                estimated_power_kw=v["old_system.estimated_power_kw"],
            ),
            new_system=NewSystem(
                type=v["new_system.type"],
                power_kw=v["new_system.power_kw"],
                has_storage=v["new_system.has_storage"],
                efficiency_class=v["new_system.efficiency_class"],
            ),
            costs=Costs(total_estimated_cost=v["costs.total_estimated_cost"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_type": self.user_type.value,
            "climate_zone": self.climate_zone.value,
            "old_system": {
                "type": self.old_system.type.value,
                "year": self.old_system.year,
                "estimated_power_kw": self.old_system.estimated_power_kw,
            },
            "new_system": {
                "type": self.new_system.type.value,
                "power_kw": self.new_system.power_kw,
                "has_storage": self.new_system.has_storage,
                "efficiency_class": self.new_system.efficiency_class.value,
            },
            "costs": {"total_estimated_cost": self.costs.total_estimated_cost},
        }


@dataclass(frozen=True)
class SimulationResult:
    raw_incentive: float     # before the category ceiling
    final_incentive: float   # after the ceiling
    percent_covered: float   # final / total cost * 100
    payment_mode: PaymentMode
    payment_years: int       # 2 or 5
    annual_payment: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "raw_incentive": self.raw_incentive,
            "final_incentive": self.final_incentive,
            "percent_covered": self.percent_covered,
            "payment_mode": self.payment_mode.value,
            "payment_years": self.payment_years,
            "annual_payment": self.annual_payment,
        }
