# storefront/core/auth.py
import logging
from typing import Any, Callable

from jose import jwt, JWTError
from pydantic import BaseModel, ConfigDict
from supabase import AsyncClient

from storefront.core.config import Settings, get_settings
from storefront.core.errors import AuthRequired

logger = logging.getLogger(__name__)


class IdentityChange(BaseModel):
    """
    Auth state as pushed by the identity provider.
    """

    model_config = ConfigDict(frozen=True)

    identity_present: bool
    owner_id: str | None = None

    @classmethod
    def present(cls, owner_id: str) -> "IdentityChange":
        return cls(identity_present=True, owner_id=str(owner_id))


ANONYMOUS = IdentityChange(identity_present=False)

IdentityListener = Callable[[IdentityChange, IdentityChange], None]


def decode_access_token(token: str, settings: Settings | None = None) -> dict[str, Any]:
    """
    Decode and verify a Supabase access token (JWT).

    Verification:
      - signature (SUPABASE_JWT_SECRET / SUPABASE_JWT_ALG)
      - expiration time (exp)
      - audience is NOT verified (Supabase 'aud' may vary)

    Raises:
        RuntimeError: if SUPABASE_JWT_SECRET is not configured.
        AuthRequired: if the token is invalid/expired or has no 'sub'.
    """
    settings = settings or get_settings()
    if not settings.SUPABASE_JWT_SECRET:
        raise RuntimeError("Missing SUPABASE_JWT_SECRET in .env")

    try:
        claims = jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=[settings.SUPABASE_JWT_ALG],
            options={"verify_aud": False},
        )
    except JWTError:
        raise AuthRequired("Invalid or expired token", operation="sign_in")

    if not claims.get("sub"):
        raise AuthRequired("Token missing sub", operation="sign_in")
    return claims


class IdentityProvider:
    """
    Holds the current identity and pushes every transition to subscribers.

    Listeners are called as listener(previous, current). There is no
    polling: whoever learns about a sign in/out calls publish().
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings
        self._current: IdentityChange = ANONYMOUS
        self._listeners: list[IdentityListener] = []

    @property
    def current(self) -> IdentityChange:
        return self._current

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        """
        Register a listener. Returns a callable that unsubscribes it.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, change: IdentityChange) -> None:
        previous, self._current = self._current, change
        logger.info(
            "Identity transition: %s -> %s",
            previous.owner_id or "anonymous",
            change.owner_id or "anonymous",
        )
        for listener in list(self._listeners):
            listener(previous, change)

    def sign_in(self, owner_id: str) -> None:
        self.publish(IdentityChange.present(owner_id))

    def sign_out(self) -> None:
        self.publish(ANONYMOUS)

    def sign_in_with_token(self, token: str) -> str:
        """
        Sign in from a raw Supabase access token.

        Returns:
            The owner id (the token's 'sub' claim).
        """
        claims = decode_access_token(token, self.settings)
        owner_id = str(claims["sub"])
        self.sign_in(owner_id)
        return owner_id


class SupabaseAuthBridge:
    """
    Forwards Supabase auth events into an IdentityProvider.

    Flow:
      1. start(): initial session check via auth.get_session().
      2. Subscribe to auth.on_auth_state_change.
      3. SIGNED_OUT or missing session => sign_out, anything else => sign_in.
    """

    def __init__(self, client: AsyncClient, provider: IdentityProvider):
        self.client = client
        self.provider = provider
        self._subscription = None

    async def start(self) -> None:
        session = await self.client.auth.get_session()
        self._on_auth_event("INITIAL_SESSION", session)
        self._subscription = self.client.auth.on_auth_state_change(self._on_auth_event)

    def stop(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def _on_auth_event(self, event: Any, session: Any) -> None:
        event_name = getattr(event, "value", event)
        user = getattr(session, "user", None) if session else None

        if event_name == "SIGNED_OUT" or user is None:
            if self.provider.current.identity_present:
                self.provider.sign_out()
            return

        owner_id = str(user.id)
        # Token refreshes re-announce the same user; nothing changed for us.
        if self.provider.current.owner_id != owner_id:
            self.provider.sign_in(owner_id)
