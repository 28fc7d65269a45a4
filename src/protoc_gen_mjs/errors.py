class GenerationError(Exception):
    """Raised for invalid plugin options or when descriptors cannot be obtained."""
