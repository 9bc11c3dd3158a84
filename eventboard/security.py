import logging
from typing import Optional

import requests
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from eventboard.config import get_settings
from eventboard.exceptions import (
    ForbiddenError,
    ServiceUnavailableError,
    UnauthorizedError,
)
from eventboard.schemas.user import Actor, Role

logger = logging.getLogger(__name__)

# anonymous callers are allowed through; routes decide whether they need an actor
security = HTTPBearer(auto_error=False)


class CredentialService:
    """Verifies bearer tokens against the external credential service."""

    def __init__(self, base_url: str, timeout: float = 5):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def verify(self, token: str) -> Actor:
        try:
            response = requests.get(
                f"{self.base_url}/users/me",
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error("Credential service unreachable: %s", e)
            raise ServiceUnavailableError("Authentication service unavailable")

        if response.status_code != 200:
            raise UnauthorizedError("Invalid authentication credentials")

        user_data = response.json()
        role = user_data.get("role", Role.USER.value)
        if role not in {r.value for r in Role}:
            role = Role.USER.value
        return Actor(id=str(user_data["id"]), role=role)


def get_credential_service() -> CredentialService:
    settings = get_settings()
    return CredentialService(settings.auth_service_url, settings.auth_timeout_seconds)


def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    credential_service: CredentialService = Depends(get_credential_service),
) -> Optional[Actor]:
    if credentials is None:
        return None
    return credential_service.verify(credentials.credentials)


def require_actor(actor: Optional[Actor] = Depends(get_current_actor)) -> Actor:
    if actor is None:
        raise UnauthorizedError("Authentication required")
    return actor


def require_admin(actor: Actor = Depends(require_actor)) -> Actor:
    if not actor.is_admin:
        raise ForbiddenError("Admin access required")
    return actor
