import logging
from typing import Optional

from supabase import AsyncClient, AuthApiError

from app.core.errors import RallyError
from app.profiles.repository import ProfileRepository

logger = logging.getLogger(__name__)


class AuthFailed(RallyError):
    status_code = 401
    user_message = "We couldn't sign you in. Please try again."


# (fragment of the auth error, message shown to the user)
LOGIN_MESSAGES = [
    ("invalid login credentials", "Oops! That password doesn't match our records. Try again?"),
    ("user not found", "This account doesn't exist yet. Would you like to sign up instead?"),
    ("invalid email", "Please enter a valid email address."),
    ("unable to validate email", "Please enter a valid email address."),
    ("rate limit", "Too many attempts. Please try again later."),
    ("too many", "Too many attempts. Please try again later."),
    ("expired", "Your login session has expired. Please try again."),
]


def friendly_auth_message(error_message: str) -> str:
    lowered = (error_message or "").lower()
    for fragment, message in LOGIN_MESSAGES:
        if fragment in lowered:
            return message
    return error_message or AuthFailed.user_message


class SupabaseIdentityProvider:
    """Thin wrapper over Supabase auth. Sign-up also writes the stub profile."""

    def __init__(self, client: AsyncClient, profiles: ProfileRepository):
        self.client = client
        self.profiles = profiles

    async def sign_up(self, email: str, password: str, full_name: str) -> str:
        try:
            res = await self.client.auth.sign_up(
                {
                    "email": email,
                    "password": password,
                    "options": {"data": {"full_name": full_name}},
                }
            )
        except AuthApiError as error:
            logger.error(f"supabase_error={error}")
            raise AuthFailed(friendly_auth_message(error.message))

        if not res.user:
            raise AuthFailed("Failed to create user.")

        await self.profiles.create_stub_profile(res.user.id, full_name, email)

        logger.info(f"user_signup_success user_id={res.user.id}")
        return res.user.id

    async def sign_in(self, email: str, password: str) -> dict:
        try:
            res = await self.client.auth.sign_in_with_password(
                {"email": email, "password": password}
            )
        except AuthApiError as error:
            raise AuthFailed(friendly_auth_message(error.message))

        if not res.session or not res.user:
            raise AuthFailed("Unexpected error: no session returned.")

        logger.info(f"user_login_success user_id={res.user.id}")
        return {
            "access_token": res.session.access_token,
            "refresh_token": res.session.refresh_token,
            "expires_in": res.session.expires_in,
            "user_id": res.user.id,
            "email": res.user.email,
        }

    async def refresh(self, refresh_token: str) -> dict:
        try:
            res = await self.client.auth.refresh_session(refresh_token)
        except AuthApiError as error:
            raise AuthFailed(friendly_auth_message(error.message))

        if not res.session:
            raise AuthFailed("Refresh token invalid or expired. Please log in again.")

        return {
            "access_token": res.session.access_token,
            "refresh_token": res.session.refresh_token,
        }

    async def sign_out(self):
        try:
            await self.client.auth.sign_out()
        except AuthApiError as error:
            logger.warning(f"sign_out_failed error={error}")

    async def current_principal_id(self) -> Optional[str]:
        """
        Id of the user signed in on this client, or None. HTTP requests do not
        use this; they take the principal from the `sub` claim of the bearer JWT.
        """
        res = await self.client.auth.get_user()
        if not res or not res.user:
            return None
        return res.user.id
