"""Event normalization, drive building, preferences and caching."""
