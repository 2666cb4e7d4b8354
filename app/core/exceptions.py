# app/core/exceptions.py

from typing import List, Optional


class LedgerError(Exception):
    """Base de los errores del motor de cuentas compartidas."""


class ValidationError(LedgerError):
    """La transacción no cumple los invariantes; no se persiste nada."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class UnresolvedCounterpartyError(LedgerError):
    """La contraparte de una liquidación no corresponde a ningún usuario."""

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"No se encontró la contraparte de la liquidación: {reference}")


class StorageError(LedgerError):
    """Falla del almacenamiento; la escritura completa se revirtió."""

    def __init__(self, message: str = "Error de almacenamiento", original: Optional[Exception] = None):
        self.original = original
        super().__init__(message)


class ReconciliationError(LedgerError):
    """La suscripción a cambios se cayó o no pudo establecerse."""
