"""Supabase Auth implementation of the identity provider."""

from collections.abc import Callable
from dataclasses import dataclass
from uuid import UUID

from supabase import Client

from date_nights.domain.errors import (
    AuthExchangeError,
    MagicLinkError,
    SessionReadError,
    SignOutError,
)
from date_nights.domain.models import AuthSession
from date_nights.services.auth import AuthChangeCallback, IdentityProvider


def _to_auth_session(session: object | None) -> AuthSession | None:
    user = getattr(session, "user", None)
    user_id = getattr(user, "id", None)
    if not user_id:
        return None
    return AuthSession(user_id=UUID(str(user_id)), email=getattr(user, "email", None))


@dataclass
class SupabaseAuthProvider(IdentityProvider):
    """Identity provider backed by a per-browser Supabase client.

    The client's auth storage holds the PKCE code verifier, so a code can
    only be exchanged by the client that requested the link.
    """

    client: Client

    def exchange_code_for_session(self, code: str) -> AuthSession:
        """Exchange an authorization code for a session."""
        try:
            response = self.client.auth.exchange_code_for_session({"auth_code": code})
        except Exception as exc:  # noqa: BLE001
            raise AuthExchangeError(str(exc) or None) from exc
        session = _to_auth_session(getattr(response, "session", None))
        if session is None:
            raise AuthExchangeError()
        return session

    def get_session(self) -> AuthSession | None:
        """Return the session in this client's storage, if any."""
        try:
            session = self.client.auth.get_session()
        except Exception as exc:  # noqa: BLE001
            raise SessionReadError(str(exc) or None) from exc
        return _to_auth_session(session)

    def send_magic_link(self, email: str, redirect_to: str) -> None:
        """Request a passwordless sign-in email."""
        try:
            self.client.auth.sign_in_with_otp(
                {"email": email, "options": {"email_redirect_to": redirect_to}}
            )
        except Exception as exc:  # noqa: BLE001
            raise MagicLinkError(str(exc) or None) from exc

    def sign_out(self) -> None:
        """Sign out and clear stored tokens."""
        try:
            self.client.auth.sign_out()
        except Exception as exc:  # noqa: BLE001
            raise SignOutError(str(exc) or None) from exc

    def subscribe(self, callback: AuthChangeCallback) -> Callable[[], None]:
        """Forward auth state changes as domain sessions."""

        def forward(event: object, session: object | None) -> None:
            callback(str(event), _to_auth_session(session))

        subscription = self.client.auth.on_auth_state_change(forward)
        return subscription.unsubscribe
