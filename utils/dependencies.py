"""
Dependencias de autenticación y autorización

Cada request recibe un StaffContext explícito construido a partir del token
bearer; no hay cliente/token global a nivel de módulo.
"""
from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from utils.auth import verify_token
from utils.errors import Forbidden, Unauthorized
from utils.logging_utils import log_event


bearer_scheme = HTTPBearer(auto_error=False)

MANAGER_ROLES = ("manager", "admin")


@dataclass(frozen=True)
class StaffContext:
    staff_id: str
    name: str = ""
    role: str = "staff"
    property_ids: FrozenSet[str] = field(default_factory=frozenset)
    token: str = ""

    def can_access(self, property_id: str) -> bool:
        # Sin lista de propiedades en el token → acceso a todas (admin de cadena)
        return not self.property_ids or property_id in self.property_ids


# ========== DEPENDENCIAS DE AUTENTICACIÓN ==========

def get_staff_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> StaffContext:
    """
    Obtiene el staff actual desde el token JWT

    Raises:
        Unauthorized: Si falta el header o el token es inválido
    """
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        raise Unauthorized("Authentication required")

    payload = verify_token(credentials.credentials, token_type="access")
    staff_id = payload.get("sub")
    if not staff_id:
        raise Unauthorized("Token has no subject")

    property_ids = payload.get("property_ids") or []
    if isinstance(property_ids, str):
        property_ids = [property_ids]
    if payload.get("property_id"):
        property_ids = list(property_ids) + [payload["property_id"]]

    return StaffContext(
        staff_id=str(staff_id),
        name=payload.get("name", ""),
        role=payload.get("role", "staff"),
        property_ids=frozenset(str(p) for p in property_ids),
        token=credentials.credentials,
    )


# ========== DEPENDENCIAS DE AUTORIZACIÓN ==========

def require_roles(roles_permitidos: List[str]):
    """
    Dependency para requerir roles específicos (ej: ["manager", "admin"])
    """
    def check_role(staff: StaffContext = Depends(get_staff_context)) -> StaffContext:
        if staff.role not in roles_permitidos:
            log_event(
                "auth",
                staff.staff_id,
                "Intento de acceso no autorizado",
                f"rol={staff.role} roles_requeridos={roles_permitidos}",
            )
            raise Forbidden(f"Access denied. Allowed roles: {', '.join(roles_permitidos)}")
        return staff

    return check_role


require_manager = require_roles(list(MANAGER_ROLES))


def ensure_property_access(staff: StaffContext, property_id: str) -> None:
    if not staff.can_access(property_id):
        log_event("auth", staff.staff_id, "Acceso a propiedad denegado", f"property_id={property_id}")
        raise Forbidden(f"No access to property {property_id}")
