# app/db/base.py
from __future__ import annotations

import importlib
import logging
from typing import Iterable, List, Set

from sqlalchemy.orm import DeclarativeBase, configure_mappers

log = logging.getLogger("stockcore.models")


class Base(DeclarativeBase):
    """Single ORM Base for every table of the stock engine."""

    pass


_INITIALIZED: bool = False

# Import order matters for string relationship targets.
MODEL_MODULES = [
    "app.models.product",
    "app.models.location",
    "app.models.location_stock",
    "app.models.stock_ledger",
    "app.models.audit_event",
    "app.models.product_link",
    "app.models.external_order",
]


def init_models(
    *,
    extra_modules: Iterable[str] | None = None,
    exclude: Iterable[str] | None = None,
    force: bool = False,
) -> None:
    """
    Import every model module and configure mappers once:
      1) the explicit chain above
      2) any extra modules requested by the caller
      3) configure_mappers() so relationship errors surface at startup
    """
    global _INITIALIZED
    if _INITIALIZED and not force:
        log.debug("init_models() called again; already initialized, skipping.")
        return

    ex: Set[str] = set(exclude or [])
    loaded: List[str] = []

    for mod in [m for m in MODEL_MODULES + list(extra_modules or []) if m not in ex]:
        if mod in loaded:
            continue
        importlib.import_module(mod)
        loaded.append(mod)

    configure_mappers()
    _INITIALIZED = True
    log.info("ORM models initialized & mappers configured (loaded %d modules)", len(loaded))
