from __future__ import annotations
import math

from contotermico.incentive.config import GseConfig
from contotermico.incentive.models import EfficiencyClass, OldSystem


def old_system_multiplier(old_system: OldSystem, config: GseConfig) -> float:
    """Type multiplier times age multiplier for the system being replaced.

    Age rules are scanned in the order they are configured and the first rule
    with `year <= year_cutoff` is applied; later rules are never consulted.
    Absent entries contribute a neutral 1.
    """
    osm = config.old_system_multiplier
    if osm is None:
        return 1.0

    multiplier = 1.0
    if osm.by_type is not None and old_system.type in osm.by_type:
        multiplier *= osm.by_type[old_system.type]

    for rule in osm.by_age:
        if old_system.year <= rule.year_cutoff:
            multiplier *= rule.multiplier
            break

    return multiplier


def efficiency_multiplier(efficiency_class: EfficiencyClass, config: GseConfig) -> float:
    if config.efficiency_multiplier is None:
        return 1.0
    return float(config.efficiency_multiplier.get(efficiency_class, 1.0))


def round2(value: float) -> float:
    """Round to the cent, halves away from zero.

    Values too large to scale by 100 already have no fractional cents and
    are returned unchanged, as are inf and nan.
    """
    scaled = abs(value) * 100.0
    if not math.isfinite(scaled):
        return value
    return math.copysign(math.floor(scaled + 0.5) / 100.0, value)
