"""Session-scoped persistence helpers returning pydantic domain objects."""
