# storefront/services/identity_reactor.py
import logging
from typing import Callable

from storefront.core.auth import IdentityChange, IdentityProvider
from storefront.services.sync_engine import SyncEngine

logger = logging.getLogger(__name__)


class IdentityReactor:
    """
    Reload or clear the engines when the signed-in identity changes.

      - absent -> present:         bind + load every engine
      - present -> absent:         reset every engine to empty
      - present -> other present:  same as a fresh login, no merge
      - same owner re-announced:   nothing (e.g. token refresh)
    """

    def __init__(self, provider: IdentityProvider, engines: list[SyncEngine]):
        self.provider = provider
        self.engines = list(engines)
        self._unsubscribe: Callable[[], None] | None = None

    def start(self) -> None:
        """
        Apply the provider's current identity, then follow its transitions.
        """
        if self._unsubscribe is not None:
            return
        self._unsubscribe = self.provider.subscribe(self.on_identity_change)
        current = self.provider.current
        if current.identity_present:
            self._login(current.owner_id)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def on_identity_change(self, previous: IdentityChange, current: IdentityChange) -> None:
        if not current.identity_present:
            logger.info("Signed out: clearing %d collections", len(self.engines))
            for engine in self.engines:
                engine.reset()
            return

        if previous.identity_present and previous.owner_id == current.owner_id:
            return

        self._login(current.owner_id)

    def _login(self, owner_id: str | None) -> None:
        logger.info("Signed in as %s: loading %d collections", owner_id, len(self.engines))
        for engine in self.engines:
            engine.bind(owner_id)
            engine.load()
