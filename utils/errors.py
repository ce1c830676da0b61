"""
Errores de dominio del room grid.
Cada error lleva el código y el status HTTP con el que se responde al cliente;
main.py los convierte al envelope {success, error: {code, message, details}}.
"""
from typing import Any, Optional


class BreakfastError(Exception):
    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        payload = {"code": self.code, "message": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ValidationError(BreakfastError):
    code = "VALIDATION_ERROR"
    status_code = 400


class Unauthorized(BreakfastError):
    code = "UNAUTHORIZED"
    status_code = 401


class Forbidden(BreakfastError):
    code = "FORBIDDEN"
    status_code = 403


class NotFound(BreakfastError):
    code = "NOT_FOUND"
    status_code = 404


class NoEligibleGuest(BreakfastError):
    """No hay huésped activo con paquete de desayuno en la habitación"""
    code = "NO_ELIGIBLE_GUEST"
    status_code = 409


class NoPendingRecord(BreakfastError):
    code = "NO_PENDING_RECORD"
    status_code = 409


class DayClosed(BreakfastError):
    """El registro del día ya fue cerrado como no_show"""
    code = "DAY_CLOSED"
    status_code = 409


class PmsAdapterFailure(BreakfastError):
    """Falla del PMS upstream (red, timeout, payload ilegible)"""
    code = "PMS_ADAPTER_FAILURE"
    status_code = 502


class PmsPostingFailed(BreakfastError):
    """
    No se pudo postear el cargo al PMS.
    Nunca revierte el consumo: se devuelve como warning.
    """
    code = "PMS_POSTING_FAILED"
    status_code = 502

    def as_warning(self) -> dict:
        return self.to_dict()
