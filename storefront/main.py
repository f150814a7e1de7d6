# storefront/main.py
import asyncio
import logging

from supabase import AsyncClient

from storefront.core.auth import IdentityProvider, SupabaseAuthBridge
from storefront.core.config import Settings, get_settings
from storefront.core.notifications import LoggingNotificationSink, NotificationSink
from storefront.core.supabase_client import supabase_public
from storefront.repositories.cart_repo import CartGateway
from storefront.repositories.wishlist_repo import WishlistGateway
from storefront.schemas.keys import ProvisionalKeyFactory
from storefront.services.cart_service import CartEngine
from storefront.services.identity_reactor import IdentityReactor
from storefront.services.wishlist_service import WishlistEngine

logger = logging.getLogger(__name__)

def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


class Storefront:
    """
    Cart + wishlist engines wired to one Supabase client and one identity.

    Lifecycle:
      - start(): follow identity changes, then run the initial session check
        (a present session triggers a full load of both collections).
      - close(): stop following auth events and wait for in-flight syncs.
    """

    def __init__(
        self,
        client: AsyncClient,
        settings: Settings | None = None,
        sink: NotificationSink | None = None,
    ):
        self.settings = settings or get_settings()
        self.client = client
        self.sink = sink or LoggingNotificationSink()

        keys = ProvisionalKeyFactory(self.settings.PROVISIONAL_KEY_PREFIX)
        self.cart = CartEngine(
            CartGateway(client, self.settings.CART_TABLE, self.settings.PRODUCTS_TABLE),
            sink=self.sink,
            key_factory=keys,
        )
        self.wishlist = WishlistEngine(
            WishlistGateway(client, self.settings.WISHLIST_TABLE, self.settings.PRODUCTS_TABLE),
            sink=self.sink,
            key_factory=keys,
        )

        self.identity = IdentityProvider(self.settings)
        self.reactor = IdentityReactor(self.identity, [self.cart, self.wishlist])
        self.auth_bridge = SupabaseAuthBridge(client, self.identity)

    async def start(self) -> None:
        logger.info("Starting %s", self.settings.PROJECT_NAME)
        self.reactor.start()
        await self.auth_bridge.start()

    async def close(self) -> None:
        self.auth_bridge.stop()
        self.reactor.stop()
        await self.drain()
        logger.info("Stopped %s", self.settings.PROJECT_NAME)

    async def drain(self) -> None:
        await asyncio.gather(self.cart.drain(), self.wishlist.drain())


async def create_storefront(
    settings: Settings | None = None,
    sink: NotificationSink | None = None,
) -> Storefront:
    """
    Build and start a storefront from settings (.env by default).
    """
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL)

    client = await supabase_public(settings)
    storefront = Storefront(client, settings=settings, sink=sink)
    await storefront.start()
    return storefront
