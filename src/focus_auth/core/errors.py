"""Error taxonomy shared by every authentication channel."""

from __future__ import annotations

from enum import Enum

from fastapi import status


class AuthErrorCode(str, Enum):
    """Machine-readable failure codes reported to clients."""

    UNAUTHORIZED = "UNAUTHORIZED"
    BAD_REQUEST = "BAD_REQUEST"
    NOT_READY = "NOT_READY"
    NOT_FOUND = "NOT_FOUND"
    ALREADY_USED = "ALREADY_USED"
    REVOKED = "REVOKED"
    EXPIRED = "EXPIRED"
    BAD_SIGNATURE = "BAD_SIGNATURE"
    STALE = "STALE"
    SIGNATURE_RECOVER_FAILED = "SIGNATURE_RECOVER_FAILED"
    ADDRESS_MISMATCH = "ADDRESS_MISMATCH"
    DOMAIN_MISMATCH = "DOMAIN_MISMATCH"
    CREATE_USER_FAILED = "CREATE_USER_FAILED"
    AUTH_FAILED = "AUTH_FAILED"
    DB_ERROR = "DB_ERROR"


_STATUS_BY_CODE: dict[AuthErrorCode, int] = {
    AuthErrorCode.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    AuthErrorCode.BAD_REQUEST: status.HTTP_400_BAD_REQUEST,
    AuthErrorCode.NOT_READY: status.HTTP_409_CONFLICT,
    AuthErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    AuthErrorCode.ALREADY_USED: status.HTTP_409_CONFLICT,
    AuthErrorCode.REVOKED: status.HTTP_409_CONFLICT,
    AuthErrorCode.EXPIRED: status.HTTP_410_GONE,
    AuthErrorCode.BAD_SIGNATURE: status.HTTP_401_UNAUTHORIZED,
    AuthErrorCode.STALE: status.HTTP_401_UNAUTHORIZED,
    AuthErrorCode.SIGNATURE_RECOVER_FAILED: status.HTTP_400_BAD_REQUEST,
    AuthErrorCode.ADDRESS_MISMATCH: status.HTTP_400_BAD_REQUEST,
    AuthErrorCode.DOMAIN_MISMATCH: status.HTTP_400_BAD_REQUEST,
    AuthErrorCode.CREATE_USER_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
    AuthErrorCode.AUTH_FAILED: status.HTTP_401_UNAUTHORIZED,
    AuthErrorCode.DB_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class AuthBridgeError(RuntimeError):
    """Terminal failure of an authentication step.

    Raised by the services and rendered by the API layer as
    ``{"error_code": ..., "error": ..., "rid": ...}``.
    """

    def __init__(
        self,
        code: AuthErrorCode,
        message: str | None = None,
        *,
        status_code: int | None = None,
    ) -> None:
        self.code = code
        self.message = message or code.value.replace("_", " ").capitalize()
        self.status_code = status_code or _STATUS_BY_CODE[code]
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"AuthBridgeError({self.code.value!r}, {self.message!r})"
