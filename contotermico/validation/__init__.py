"""Input validation for simulation requests.

Advisory only: issues are returned as data and the engine never consults them.
"""
