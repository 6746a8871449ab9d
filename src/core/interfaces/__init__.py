"""Interfaces/abstracciones del Core.

Por qué:
- Define contratos (Protocol) que implementan adaptadores concretos.
- Permite invertir dependencias: el Core depende de abstracciones.
"""

from core.interfaces.remote import CatalogGateway, Confirmer, IngressGateway, OutgoingGateway

__all__ = ["CatalogGateway", "Confirmer", "IngressGateway", "OutgoingGateway"]
