"""Excepciones del subsistema de tickets"""


class TicketIssuanceError(Exception):
    """No se pudo emitir ni sintetizar un ticket"""


class NoCodeFoundError(Exception):
    """La imagen no contiene un código legible"""


class EmptyScanError(Exception):
    """Entrada manual vacía"""


class CheckInUnavailableError(Exception):
    """El backend de check-in no respondió (red, timeout o 5xx)"""


class CheckInRejectedError(Exception):
    """El backend rechazó la solicitud (4xx)"""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code
