"""Incentive engine for heating-system replacement (Conto Termico).

- models.py: closed enumerations, simulation input/result values
- config.py: GSE coefficient model and the baseline DEFAULT_GSE_CONFIG
- multipliers.py: old-system / efficiency resolution and cent rounding
- engine.py: calculate_incentive
"""
