"""
Utilidades JWT para el token bearer del staff.
La emisión/login vive fuera de este servicio; acá solo se valida y, para
operadores y tests, se puede firmar un token.
"""
from datetime import datetime, timedelta
from typing import Optional

import pytz
from jose import JWTError, jwt

import config
from utils.errors import Unauthorized


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Crea un token de acceso JWT
    """
    to_encode = data.copy()
    now = datetime.now(pytz.utc)
    expire = now + (expires_delta or timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES))

    to_encode.update({
        "exp": expire,
        "iat": now,
        "type": "access",
    })
    return jwt.encode(to_encode, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def verify_token(token: str, token_type: str = "access") -> dict:
    """
    Verifica y decodifica un token JWT

    Raises:
        Unauthorized: Si el token es inválido, de otro tipo o expirado
    """
    try:
        # jose valida firma y exp
        payload = jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
    except JWTError:
        raise Unauthorized("Invalid or expired token")

    if payload.get("type") != token_type:
        raise Unauthorized(f"Invalid token type, expected '{token_type}'")
    if payload.get("exp") is None:
        raise Unauthorized("Token has no expiration")
    return payload
