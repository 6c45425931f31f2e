from datetime import datetime, timedelta, timezone

import jwt
from fastapi import HTTPException, Security
from fastapi.security import APIKeyHeader
from starlette.status import HTTP_403_FORBIDDEN

from live_mosaic.models.app_config import get_config

API_KEY = APIKeyHeader(name="api_key", auto_error=False)
ADMIN_ID = "live-mosaic-admin"
KEY_LIFETIME_DAYS = 365


def create_api_key(secret: str, user_id: str = ADMIN_ID, lifetime_days: int = KEY_LIFETIME_DAYS) -> str:
    payload = {"app": "live-mosaic", "id": user_id, "exp": datetime.now(timezone.utc) + timedelta(days=lifetime_days)}
    return str(jwt.encode(payload, secret, algorithm="HS256"))


class AuthService:
    """Guards the admin endpoints with a JWT api key (only if ENABLE_AUTH is set)"""

    async def admin_auth(self, api_key: str = Security(API_KEY)) -> str:
        return await self._auth(api_key, ADMIN_ID)

    @staticmethod
    async def _auth(api_key_header: str, user_id: str) -> str:
        if not get_config().enable_auth:
            return ""
        try:
            decoded_token = jwt.decode(api_key_header or "", get_config().jwt_secret, algorithms=["HS256"])
        except jwt.PyJWTError as exc:
            raise HTTPException(status_code=HTTP_403_FORBIDDEN, detail="api_key header invalid or missing") from exc
        if decoded_token.get("id") != user_id:
            raise HTTPException(status_code=HTTP_403_FORBIDDEN, detail="api_key header invalid or missing")
        return api_key_header
