"""Domain layer for cambio application."""

_SERVICES = {
    "TransactionService": "cambio.domain.transaction",
    "SettlementService": "cambio.domain.settlement",
    "ReconciliationService": "cambio.domain.reconciliation",
    "PassThroughService": "cambio.domain.passthrough",
    "ClientService": "cambio.domain.client",
    "AssetService": "cambio.domain.asset",
    "Directory": "cambio.domain.directory",
}

__all__ = list(_SERVICES)


# Import services lazily; database.base imports domain.entities, and the
# services import database.base
def __getattr__(name):
    if name in _SERVICES:
        import importlib

        module = importlib.import_module(_SERVICES[name])
        return getattr(module, name)
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
