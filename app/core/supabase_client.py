import os
import logging
from typing import Optional

from dotenv import load_dotenv
from supabase import acreate_client, AsyncClient


load_dotenv()
logger = logging.getLogger(__name__)

supabase_url = os.getenv("PUBLIC_SUPABASE_URL")
supabase_key = os.getenv("SECRET_API_KEY")

_client: Optional[AsyncClient] = None


async def get_supabase() -> AsyncClient:
    """Return the shared async Supabase client, creating it on first use."""
    global _client

    if _client is None:
        if not supabase_url or not supabase_key:
            raise RuntimeError("PUBLIC_SUPABASE_URL and SECRET_API_KEY must be set.")
        _client = await acreate_client(supabase_url, supabase_key)
        logger.info(f"supabase_client_created url={supabase_url}")

    return _client
