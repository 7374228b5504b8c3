"""Billing API routers."""

from snt_billing.api.routes import imports, payments, periods, plots, reports

__all__ = ["imports", "payments", "periods", "plots", "reports"]
