"""
Servicios de aplicacion.

Contiene la logica de negocio reutilizable que no pertenece
a un caso de uso especifico.
"""
from roster_sync.application.services.record_transformer import to_local_record

__all__ = ["to_local_record"]
