"""REST API service with a user account model, schema migrations and a health endpoint."""

__version__ = "0.1.0"

__all__ = ["__version__"]