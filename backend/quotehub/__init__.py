# backend/quotehub/__init__.py
"""quotehub: data provider aggregation, quote caching and a data provider gateway."""
