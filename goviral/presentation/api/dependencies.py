from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ...application.services.auth_service import TenantAuthService
from ...core.dependencies import get_auth_service
from ...domain.models import Tenant

_bearer_scheme = HTTPBearer(auto_error=False)


def require_tenant(
    credentials: HTTPAuthorizationCredentials = Depends(_bearer_scheme),
    auth_service: TenantAuthService = Depends(get_auth_service),
) -> Tenant:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return auth_service.verify_token(credentials.credentials)


def require_admin(tenant: Tenant = Depends(require_tenant)) -> Tenant:
    if not tenant.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return tenant
