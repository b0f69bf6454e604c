from __future__ import annotations

from decimal import Decimal


class PackhouseError(ValueError):
    """Failure of a user action, carrying the message shown on the status line."""

    message = 'No se pudo completar la operación.'

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)

    @property
    def user_message(self) -> str:
        return str(self)


class MissingSelection(PackhouseError):
    message = 'Debes seleccionar una entrega y una fecha.'


class EmptySubmission(PackhouseError):
    message = 'Debes llenar al menos una fila.'


class AlreadyGraded(PackhouseError):
    message = 'Esta entrega ya fue clasificada anteriormente.'


class OverAllocation(PackhouseError):
    def __init__(self, *, limit: Decimal, attempted: Decimal) -> None:
        self.limit = limit
        self.attempted = attempted
        super().__init__(
            f'No puedes clasificar más de {limit:,.2f} kg. Ya sumaste {attempted:,.2f} kg.'
        )


class DuplicateSale(PackhouseError):
    message = 'Esta clasificación ya tiene una venta registrada.'


class NumberAssignmentFailed(PackhouseError):
    message = 'Error al generar número de nota.'


class DuplicateClient(PackhouseError):
    message = 'Este cliente ya está registrado. Selecciónalo desde la lista.'


class InvalidPhone(PackhouseError):
    message = 'El número de teléfono debe tener exactamente 10 dígitos.'


class InvalidLine(PackhouseError):
    message = 'Hay una línea con datos inválidos.'


class RecordNotFound(PackhouseError):
    message = 'Registro no encontrado.'


class RemoteError(PackhouseError):
    """Store failure not otherwise classified; the backend message passes through."""

    def __init__(self, message: str, *, context: str = 'Error al guardar') -> None:
        self.raw_message = message
        super().__init__(f'{context}: {message}')
