"""People-search provider adapters."""
