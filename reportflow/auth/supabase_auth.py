"""Bearer token dependency for the workflow API."""

import asyncio

from fastapi import Header, HTTPException

from reportflow.db.supabase_client import get_anon_supabase
from reportflow.logging import get_logger

logger = get_logger("reportflow.auth")


async def verify_jwt(authorization: str = Header(None)) -> dict:
    """Resolve the Supabase user behind `Authorization: Bearer <jwt>`.

    Returns {"id", "email"} for the authenticated user. The lookup goes
    through the synchronous supabase client, so it runs in the executor.
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid token")

    token = authorization[len("Bearer "):].strip()
    if not token:
        raise HTTPException(status_code=401, detail="Missing or invalid token")

    loop = asyncio.get_running_loop()
    try:
        client = get_anon_supabase()
        response = await loop.run_in_executor(None, client.auth.get_user, token)
    except RuntimeError as e:
        logger.error("Token verification unavailable: %s", e)
        raise HTTPException(status_code=503, detail="Authentication is not configured")
    except Exception as e:
        logger.info("Rejected bearer token: %s", e)
        raise HTTPException(status_code=401, detail="Invalid token")

    user = getattr(response, "user", None)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    return {"id": user.id, "email": getattr(user, "email", None)}
