"""SNT billing: accruals, payment matching, statement import and reconciliation."""

__version__ = "0.1.0"
