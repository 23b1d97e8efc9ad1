from dataclasses import dataclass
from typing import Optional

from supabase import AsyncClient

from app.auth.identity import SupabaseIdentityProvider
from app.chat.coordinator import ConversationCoordinator
from app.core.store import DocumentStore
from app.profiles.repository import ProfileRepository
from app.sessions.orchestrator import SessionOrchestrator
from app.sessions.repository import SessionRepository
from app.venues.service import VenueService


@dataclass
class Services:
    store: DocumentStore
    profiles: ProfileRepository
    sessions: SessionRepository
    conversations: ConversationCoordinator
    orchestrator: SessionOrchestrator
    venues: VenueService
    identity: Optional[SupabaseIdentityProvider] = None


def build_services(
    store: DocumentStore,
    auth_client: Optional[AsyncClient] = None,
    venues: Optional[VenueService] = None,
) -> Services:
    profiles = ProfileRepository(store)
    sessions = SessionRepository(store, profiles)
    conversations = ConversationCoordinator(store, profiles)

    return Services(
        store=store,
        profiles=profiles,
        sessions=sessions,
        conversations=conversations,
        orchestrator=SessionOrchestrator(profiles, sessions, conversations),
        venues=venues or VenueService(),
        identity=SupabaseIdentityProvider(auth_client, profiles) if auth_client else None,
    )
