from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple, Type
import json
import logging
import math

from contotermico.incentive.models import (
    ClimateZone,
    EfficiencyClass,
    NewSystemType,
    OldSystemType,
    UserType,
)

logger = logging.getLogger(__name__)


class ConfigurationError(KeyError, ValueError):
    """A coefficient the calculation needs is missing or unusable."""

    def __str__(self) -> str:
        # KeyError would repr() the message
        return str(self.args[0]) if self.args else ""


def _frozen(mapping: Optional[Mapping]) -> Optional[Mapping]:
    if mapping is None:
        return None
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True)
class AgeRule:
    year_cutoff: int
    multiplier: float


@dataclass(frozen=True)
class OldSystemMultipliers:
    by_type: Optional[Mapping[OldSystemType, float]] = None
    # scanned in declaration order, first match wins
    by_age: Tuple[AgeRule, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "by_type", _frozen(self.by_type))
        object.__setattr__(self, "by_age", tuple(self.by_age))


@dataclass(frozen=True)
class GseConfig:
    base_percentage: Mapping[UserType, float]
    climate_multiplier: Mapping[ClimateZone, float]
    system_multiplier: Mapping[NewSystemType, float]
    max_incentive: Mapping[UserType, float]
    old_system_multiplier: Optional[OldSystemMultipliers] = None
    efficiency_multiplier: Optional[Mapping[EfficiencyClass, float]] = field(default=None)

    def __post_init__(self):
        for name in ("base_percentage", "climate_multiplier", "system_multiplier", "max_incentive"):
            object.__setattr__(self, name, _frozen(getattr(self, name)))
        object.__setattr__(self, "efficiency_multiplier", _frozen(self.efficiency_multiplier))

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> "GseConfig":
        """Build a config from its JSON shape (keys are enum wire values).

        `by_age` keeps the order of the list it is given.
        """
        if not isinstance(data, Mapping):
            raise ConfigurationError("config: expected an object")
        old = data.get("old_system_multiplier")
        old_cfg = None
        if old is not None:
            if not isinstance(old, Mapping):
                raise ConfigurationError("old_system_multiplier: expected an object")
            by_type = old.get("by_type")
            old_cfg = OldSystemMultipliers(
                by_type=_keyed(OldSystemType, by_type, "old_system_multiplier.by_type") if by_type is not None else None,
                by_age=_age_rules(old.get("by_age")),
            )
        eff = data.get("efficiency_multiplier")
        try:
            cfg = GseConfig(
                base_percentage=_keyed(UserType, data["base_percentage"], "base_percentage"),
                climate_multiplier=_keyed(ClimateZone, data["climate_multiplier"], "climate_multiplier"),
                system_multiplier=_keyed(NewSystemType, data["system_multiplier"], "system_multiplier"),
                max_incentive=_keyed(UserType, data["max_incentive"], "max_incentive"),
                old_system_multiplier=old_cfg,
                efficiency_multiplier=_keyed(EfficiencyClass, eff, "efficiency_multiplier") if eff is not None else None,
            )
        except KeyError as e:
            if isinstance(e, ConfigurationError):
                raise
            raise ConfigurationError(f"missing required section {e.args[0]!r}") from None
        validate_config(cfg)
        return cfg

    @staticmethod
    def from_json_path(path: str | Path) -> "GseConfig":
        logger.info("loading GSE config from %s", path)
        try:
            data = json.loads(Path(path).read_text())
        except OSError as e:
            raise ConfigurationError(f"cannot read {path}: {e.strerror or e}") from None
        except ValueError as e:
            raise ConfigurationError(f"{path}: invalid JSON ({e})") from None
        return GseConfig.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        def plain(m):
            return {k.value: v for k, v in m.items()} if m is not None else None

        out: Dict[str, Any] = {
            "base_percentage": plain(self.base_percentage),
            "climate_multiplier": plain(self.climate_multiplier),
            "system_multiplier": plain(self.system_multiplier),
            "max_incentive": plain(self.max_incentive),
        }
        if self.old_system_multiplier is not None:
            out["old_system_multiplier"] = {
                "by_type": plain(self.old_system_multiplier.by_type),
                "by_age": [
                    {"year_cutoff": r.year_cutoff, "multiplier": r.multiplier}
                    for r in self.old_system_multiplier.by_age
                ],
            }
        if self.efficiency_multiplier is not None:
            out["efficiency_multiplier"] = plain(self.efficiency_multiplier)
        return out


def _keyed(enum_cls: Type, raw: Mapping[str, Any], section: str) -> Dict[Any, float]:
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"{section}: expected an object")
    out = {}
    for k, v in raw.items():
        try:
            key = enum_cls(k)
        except ValueError:
            raise ConfigurationError(f"{section}: unknown key {k!r}") from None
        try:
            out[key] = float(v)
        except (TypeError, ValueError, OverflowError):
            raise ConfigurationError(f"{section}.{k}: expected a number, got {v!r}") from None
    return out


def _age_rules(raw) -> Tuple[AgeRule, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, (list, tuple)):
        raise ConfigurationError(f"old_system_multiplier.by_age: expected a list, got {raw!r}")
    rules = []
    for i, r in enumerate(raw):
        try:
            rules.append(AgeRule(year_cutoff=int(r["year_cutoff"]), multiplier=float(r["multiplier"])))
        except (KeyError, TypeError, ValueError, OverflowError):
            raise ConfigurationError(
                f"old_system_multiplier.by_age[{i}]: expected {{year_cutoff, multiplier}}, got {r!r}"
            ) from None
    return tuple(rules)


def validate_config(cfg: GseConfig) -> None:
    """Reject negative or non-finite coefficients.

    Missing keys are allowed here; they surface as ConfigurationError when a
    calculation actually needs them.
    """
    sections = {
        "base_percentage": cfg.base_percentage,
        "climate_multiplier": cfg.climate_multiplier,
        "system_multiplier": cfg.system_multiplier,
        "max_incentive": cfg.max_incentive,
        "efficiency_multiplier": cfg.efficiency_multiplier or {},
    }
    if cfg.old_system_multiplier is not None:
        sections["old_system_multiplier.by_type"] = cfg.old_system_multiplier.by_type or {}
        for i, rule in enumerate(cfg.old_system_multiplier.by_age):
            sections[f"old_system_multiplier.by_age[{i}]"] = {"multiplier": rule.multiplier}
    for name, mapping in sections.items():
        for k, v in mapping.items():
            if not math.isfinite(v) or v < 0:
                key = getattr(k, "value", k)
                raise ConfigurationError(f"{name}.{key}: must be a finite non-negative number, got {v!r}")


DEFAULT_GSE_CONFIG = GseConfig(
    base_percentage={
        UserType.PRIVATE: 0.55,
        UserType.BUSINESS: 0.65,
        UserType.PUBLIC_ENTITY: 1.0,
    },
    climate_multiplier={
        ClimateZone.A: 0.9,
        ClimateZone.B: 1.0,
        ClimateZone.C: 1.05,
        ClimateZone.D: 1.1,
        ClimateZone.E: 1.2,
        ClimateZone.F: 1.3,
    },
    system_multiplier={
        NewSystemType.HEAT_PUMP: 1.2,
        NewSystemType.BIOMASS: 1.1,
        NewSystemType.SOLAR_THERMAL: 0.9,
        NewSystemType.HYBRID: 1.3,
    },
    max_incentive={
        UserType.PRIVATE: 15000.0,
        UserType.BUSINESS: 40000.0,
        UserType.PUBLIC_ENTITY: 100000.0,
    },
    old_system_multiplier=OldSystemMultipliers(
        by_type={
            OldSystemType.HEATING_OIL: 1.1,
            OldSystemType.LPG: 1.05,
        },
        # 1990 is shadowed by 2005 for every year <= 2005; kept as configured
        by_age=(
            AgeRule(year_cutoff=2005, multiplier=1.05),
            AgeRule(year_cutoff=1990, multiplier=1.1),
        ),
    ),
    efficiency_multiplier={
        EfficiencyClass.A_PLUS: 1.0,
        EfficiencyClass.A_PLUS_2: 1.05,
        EfficiencyClass.A_PLUS_3: 1.1,
    },
)
