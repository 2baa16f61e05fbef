"""
Casos de uso de la aplicacion.
"""
from .sync_use_cases import SyncUseCases, SyncRunRegistry, SyncState

__all__ = ["SyncUseCases", "SyncRunRegistry", "SyncState"]
