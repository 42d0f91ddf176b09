from enum import Enum
from typing import Optional

from fastapi import status


ADMIN_REQUIRED_MESSAGE = (
    "ACCESO DENEGADO: Se requieren permisos de administrador para esta operación."
)
NIP_REQUIRED_MESSAGE = (
    "NIP REQUERIDO: Esta operación crítica debe confirmarse con el NIP de seguridad."
)
NIP_INCORRECT_MESSAGE = "NIP INCORRECTO: La operación no fue autorizada."


class DenialReason(str, Enum):
    ADMIN_REQUIRED = "admin_required"
    NIP_REQUIRED = "nip_required"
    NIP_INCORRECT = "nip_incorrect"


class GatewayError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class MalformedRequest(GatewayError):
    """The statement cannot be classified, so it is never executed."""

    status_code = status.HTTP_400_BAD_REQUEST


class MalformedPlaceholder(MalformedRequest):
    pass


class AuthorizationDenied(GatewayError):
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, reason: DenialReason, message: Optional[str] = None):
        default_messages = {
            DenialReason.ADMIN_REQUIRED: ADMIN_REQUIRED_MESSAGE,
            DenialReason.NIP_REQUIRED: NIP_REQUIRED_MESSAGE,
            DenialReason.NIP_INCORRECT: NIP_INCORRECT_MESSAGE,
        }
        super().__init__(message or default_messages[reason])
        self.reason = reason


class ExecutionFailed(GatewayError):
    # Business-logic failure: the HTTP layer stays 200 for the assistant
    status_code = status.HTTP_200_OK

    def __init__(self, message: str, sql: str):
        super().__init__(message)
        self.sql = sql
