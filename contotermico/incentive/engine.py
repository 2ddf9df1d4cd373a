from __future__ import annotations
from typing import Mapping, Optional
import logging

from contotermico.incentive.config import DEFAULT_GSE_CONFIG, ConfigurationError, GseConfig
from contotermico.incentive.multipliers import efficiency_multiplier, old_system_multiplier, round2
from contotermico.incentive.models import PaymentMode, SimulationInput, SimulationResult

logger = logging.getLogger(__name__)

SINGLE_PAYMENT_THRESHOLD = 5000.0
LONG_TRANCHE_THRESHOLD = 15000.0
SHORT_TRANCHE_YEARS = 2
LONG_TRANCHE_YEARS = 5


def _lookup(mapping: Optional[Mapping], key, name: str) -> float:
    if mapping is None or key not in mapping:
        raise ConfigurationError(f"{name} has no entry for {getattr(key, 'value', key)!r}")
    return float(mapping[key])


def calculate_incentive(inp: SimulationInput, config: Optional[GseConfig] = None) -> SimulationResult:
    """Compute the incentive for replacing a heating system.

    raw   = total_cost * base[user_type] * climate[zone] * system[new type]
            * old-system multiplier * efficiency multiplier
    final = min(raw, max_incentive[user_type])

    Payment schedule, both tested on the capped (unrounded) amount:
    - single payment when final <= 5000, otherwise annual installments
    - 5 years when final > 15000, otherwise 2; reported for single payments too
      but only used to split installments

    Inputs are assumed valid (see `contotermico.validation.rules.validate_input`).
    Raises ConfigurationError when a required coefficient is missing.
    """
    cfg = config if config is not None else DEFAULT_GSE_CONFIG

    base = _lookup(cfg.base_percentage, inp.user_type, "base_percentage")
    climate = _lookup(cfg.climate_multiplier, inp.climate_zone, "climate_multiplier")
    system = _lookup(cfg.system_multiplier, inp.new_system.type, "system_multiplier")
    old_mult = old_system_multiplier(inp.old_system, cfg)
    eff_mult = efficiency_multiplier(inp.new_system.efficiency_class, cfg)

    cost = inp.costs.total_estimated_cost
    raw = cost * base * climate * system * old_mult * eff_mult
    logger.debug(
        "multipliers base=%s climate=%s system=%s old=%s efficiency=%s raw=%.4f",
        base, climate, system, old_mult, eff_mult, raw,
    )

    cap = _lookup(cfg.max_incentive, inp.user_type, "max_incentive")
    final = min(raw, cap)
    if final < raw:
        logger.info("incentive capped for %s: %.2f -> %.2f", inp.user_type.value, raw, cap)

    mode = PaymentMode.SINGLE_PAYMENT if final <= SINGLE_PAYMENT_THRESHOLD else PaymentMode.ANNUAL_INSTALLMENTS
    years = LONG_TRANCHE_YEARS if final > LONG_TRANCHE_THRESHOLD else SHORT_TRANCHE_YEARS
    annual = final / years if mode is PaymentMode.ANNUAL_INSTALLMENTS else final

    return SimulationResult(
        raw_incentive=round2(raw),
        final_incentive=round2(final),
        percent_covered=round2(final / cost * 100.0),
        payment_mode=mode,
        payment_years=years,
        annual_payment=round2(annual),
    )
