import os
import jwt
import logging
from typing import Optional

from dotenv import load_dotenv
from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.core.context import UserContext
from app.core.errors import PartialFailure, RallyError
from app.core.services import Services, build_services
from app.core.store import InMemoryDocumentStore
from app.core.supabase_client import get_supabase
from app.core.supabase_store import SupabaseDocumentStore

load_dotenv()
logger = logging.getLogger(__name__)

security = HTTPBearer()
JWT_SIGN_KEY = os.getenv("SUPABASE_JWT_SECRET")

_services: Optional[Services] = None


def decode_token(token: str) -> dict:
    try:
        payload = jwt.decode(
            token,
            JWT_SIGN_KEY,
            algorithms=["HS256"],
            issuer=f"{os.getenv('PUBLIC_SUPABASE_URL')}/auth/v1",
            options={"verify_aud": False},
            leeway=60,
        )
        return payload

    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")

    except jwt.InvalidTokenError as e:
        logger.warning(f"jwt_verification_failed error={e}")
        raise HTTPException(status_code=401, detail="Invalid token")


def verify_token(credentials: HTTPAuthorizationCredentials = Depends(security)):
    return decode_token(credentials.credentials)


def get_user_context(user=Depends(verify_token)) -> UserContext:
    """The authenticated caller, taken from the token's ``sub`` claim."""
    user_id = user.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")
    return UserContext(user_id=user_id, email=user.get("email"))


async def get_services() -> Services:
    global _services

    if _services is None:
        backend = os.getenv("STORE_BACKEND", "supabase").lower()
        if backend == "memory":
            _services = build_services(InMemoryDocumentStore())
        else:
            client = await get_supabase()
            _services = build_services(SupabaseDocumentStore(client), auth_client=client)
        logger.info(f"services_ready store_backend={backend}")

    return _services


def http_error(error: RallyError) -> HTTPException:
    """Turn a service-layer failure into the response shown to the user."""
    if isinstance(error, PartialFailure):
        return HTTPException(
            status_code=error.status_code,
            detail={
                "message": error.user_message,
                "operation": error.operation,
                "completed": list(error.completed),
                "failed_step": error.failed_step,
                "remaining": list(error.remaining),
            },
        )

    return HTTPException(status_code=error.status_code, detail=error.display_message)
