"""
Aggregation package: geocode a city, then merge best-effort measurements.
"""
