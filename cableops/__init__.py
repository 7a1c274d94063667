"""Customer account reconciliation core for a cable-TV operator back office."""

__version__ = "0.3.0"
