"""Errors - exception taxonomy and the permission-error channel.

Expected absences (no profile yet, no room) are not errors and are modelled
as None. Config validation failures never leave the resolver. Everything
else is raised as one of the exceptions below.
"""

import logging
import threading
from typing import Callable


logger = logging.getLogger(__name__)


class NutriSmartError(Exception):
    """Base class for application errors.

    Attributes:
        user_message: Text that may be shown to the end user as-is
    """

    user_message = "Ocorreu um erro inesperado."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.user_message)
        if message:
            self.user_message = message


class NotAuthenticatedError(NutriSmartError):
    user_message = "Usuário não autenticado ou serviço de banco de dados indisponível."


class StoreError(NutriSmartError):
    """A document store call failed."""

    user_message = "Falha ao acessar o banco de dados."

    def __init__(self, operation: str, path: str, message: str | None = None) -> None:
        super().__init__(message)
        self.operation = operation
        self.path = path


class StorePermissionError(StoreError):
    """The store rejected a call under its security rules."""

    user_message = "Permissão negada."

    def __str__(self) -> str:
        return f"Missing or insufficient permissions: {self.operation} on '{self.path}'"


class RoomLinkError(NutriSmartError):
    """A room creation, deletion or plan transaction was rejected."""

    user_message = "Não foi possível atualizar a sala."


class WebhookError(NutriSmartError):
    user_message = "Ocorreu um erro ao contatar o serviço de nutrição."


class PaymentError(NutriSmartError):
    user_message = "Ocorreu um erro ao processar o pagamento."


class AccountDeletionError(NutriSmartError):
    user_message = "Não foi possível remover a conta."


PermissionListener = Callable[[StorePermissionError], None]


class PermissionErrorChannel:
    """Dedicated channel for permission failures, separate from UI errors.

    In development an emitted error is raised after listeners run, so rule
    mismatches surface loudly. In production it is logged as a generic
    permission notice.
    """

    def __init__(self, development: bool = False) -> None:
        self.development = development
        self._listeners: list[PermissionListener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: PermissionListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def emit(self, error: StorePermissionError) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(error)

        if self.development:
            raise error
        logger.warning("Permission denied: %s on %s", error.operation, error.path)
