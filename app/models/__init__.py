# app/models/__init__.py
"""
ORM models of the stock engine.
"""

from importlib import import_module


def _export(module_name: str, class_name: str) -> None:
    module = import_module(module_name)
    globals()[class_name] = getattr(module, class_name)


MODEL_SPECS = [
    # -------- master data --------
    ("app.models.product", "Product"),
    ("app.models.location", "Location"),
    # -------- stock --------
    ("app.models.location_stock", "LocationStock"),
    ("app.models.stock_ledger", "StockLedgerEntry"),
    ("app.models.audit_event", "AuditEvent"),
    # -------- external orders --------
    ("app.models.product_link", "ProductLink"),
    ("app.models.external_order", "ExternalOrder"),
    ("app.models.external_order", "ExternalOrderItem"),
]

for _module, _cls in MODEL_SPECS:
    _export(_module, _cls)

__all__ = [cls for _, cls in MODEL_SPECS]
