import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Iterable, Optional

logger = logging.getLogger(__name__)


@dataclass
class UserContext:
    """The authenticated caller. Lives for one authenticated session or request."""

    user_id: str
    email: Optional[str] = None
    # Profile snapshot loaded on first use by the orchestrator.
    profile: Optional[object] = field(default=None, repr=False)


class NameCache:
    """Read-through cache of display names keyed by user id."""

    def __init__(self, loader: Callable[[str], Awaitable[Optional[str]]]):
        self._loader = loader
        self._names: Dict[str, str] = {}

    async def get(self, user_id: str) -> Optional[str]:
        if user_id in self._names:
            return self._names[user_id]

        name = await self._loader(user_id)
        if name is not None:
            self._names[user_id] = name
        return name

    async def get_many(self, user_ids: Iterable[str]) -> Dict[str, Optional[str]]:
        user_ids = list(dict.fromkeys(user_ids))
        names = await asyncio.gather(*(self.get(uid) for uid in user_ids))
        return dict(zip(user_ids, names))

    def prime(self, user_id: str, name: str):
        self._names[user_id] = name

    def invalidate(self, user_id: str):
        if self._names.pop(user_id, None) is not None:
            logger.debug(f"name_cache_invalidated user_id={user_id}")

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._names
