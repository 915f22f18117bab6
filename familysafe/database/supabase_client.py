import asyncio

from supabase import acreate_client, AsyncClient
from familysafe.config.settings import settings


class SupabaseClient:
    _client: AsyncClient = None
    _lock: asyncio.Lock = None

    @classmethod
    async def get_client(cls) -> AsyncClient:
        if cls._client is None:
            if cls._lock is None:
                cls._lock = asyncio.Lock()
            async with cls._lock:
                if cls._client is None:
                    cls._client = await acreate_client(settings.supabase_url, settings.supabase_key)
        return cls._client

    @classmethod
    async def create_session_client(cls) -> AsyncClient:
        """Fresh client for one signed-in user; the session runtime owns its lifecycle."""
        return await acreate_client(settings.supabase_url, settings.supabase_key)

    @classmethod
    def reset_client(cls):
        cls._client = None
        cls._lock = None


async def get_supabase() -> AsyncClient:
    return await SupabaseClient.get_client()
