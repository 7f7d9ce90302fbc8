"""Core runtime pieces: shared cache, configuration store, HTTP client pool."""
