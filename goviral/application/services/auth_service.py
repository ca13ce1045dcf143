from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from fastapi import HTTPException, status
from jose import JWTError, jwt

from ...domain.models import Tenant
from ...domain.ports.persistence import TenantRepository

logger = logging.getLogger(__name__)

ROLES = ("user", "admin")


class TenantAuthService:
    """Verifies bearer tokens issued by the identity provider.

    Tokens are HS256 JWTs carrying ``sub`` (tenant id), ``email`` and
    ``role``. Every verified tenant is upserted so billing knows the e-mail
    to hand to providers.
    """

    def __init__(self, tenants: TenantRepository, secret_key: str, algorithm: str = "HS256") -> None:
        if not secret_key:
            raise RuntimeError("AUTH_TOKEN_SECRET is not configured.")
        if secret_key == "change-me":
            logger.warning("AUTH_TOKEN_SECRET is using the default value. Configure a real secret in production.")
        self._tenants = tenants
        self._secret_key = secret_key
        self._algorithm = algorithm

    def verify_token(self, token: str) -> Tenant:
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
        except JWTError as exc:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token.") from exc
        tenant_id = payload.get("sub")
        email = payload.get("email")
        if not tenant_id or not email:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token.")
        role = payload.get("role") if payload.get("role") in ROLES else "user"
        return self._tenants.upsert_tenant(str(tenant_id), str(email).strip().lower(), role)

    def issue_token(self, tenant_id: str, email: str, role: str = "user", expires_minutes: int = 60) -> str:
        """Mint a token the way the identity provider does; used by scripts and tests."""
        now = datetime.now(tz=timezone.utc)
        payload = {
            "sub": tenant_id,
            "email": email,
            "role": role,
            "iat": now,
            "exp": now + timedelta(minutes=expires_minutes),
        }
        return jwt.encode(payload, self._secret_key, algorithm=self._algorithm)
