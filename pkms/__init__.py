"""pkms - multi-tenant authorization core for the package distribution backend."""

__version__ = "0.1.0"
