"""
Service wiring.

Builds every gateway service from one Settings object at startup and hangs the
result on ``app.state.services``. Routes reach services only through
get_services(); nothing reads the environment after startup.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from fastapi import Request
from sqlalchemy.engine import Engine

from app.config import Settings
from app.core.crypto import CryptoService
from app.services.api_key_service import ApiKeyStore
from app.services.credential_vault import CredentialVault
from app.services.gateway_dispatcher import GatewayDispatcher
from app.services.identity_resolver import IdentityResolver
from app.services.request_logger import RequestLogger
from app.services.session_service import DatabaseSessionVerifier
from app.services.tool_executor import CatalogueToolExecutor, ToolExecutor

logger = logging.getLogger(__name__)


@dataclass
class GatewayServices:
    settings: Settings
    crypto: CryptoService
    api_keys: ApiKeyStore
    sessions: DatabaseSessionVerifier
    vault: CredentialVault
    request_logger: RequestLogger
    resolver: IdentityResolver
    executor: ToolExecutor
    dispatcher: GatewayDispatcher
    usage_executor: Optional[ThreadPoolExecutor] = None

    async def aclose(self) -> None:
        """Drain usage updates and release the executor's HTTP client."""
        self.api_keys.flush_usage_updates(timeout=5)
        if self.usage_executor is not None:
            self.usage_executor.shutdown(wait=True)
        await self.executor.aclose()


def build_services(
    settings: Settings,
    engine: Optional[Engine] = None,
    tool_executor: Optional[ToolExecutor] = None,
    usage_executor: Optional[ThreadPoolExecutor] = None,
) -> GatewayServices:
    """Construct the service graph. Raises ConfigurationError without an encryption key."""
    crypto = CryptoService(
        settings.require_encryption_key(),
        previous_secret=settings.previous_encryption_key,
    )
    pepper = settings.apikey_hmac_secret or crypto.derive_secret("api-keys")
    if not settings.apikey_hmac_secret:
        logger.info("MEETGATE_APIKEY_HMAC_SECRET not set; using a pepper derived from the encryption key")

    if usage_executor is None:
        usage_executor = ThreadPoolExecutor(
            max_workers=settings.usage_update_workers,
            thread_name_prefix="apikey-usage",
        )

    api_keys = ApiKeyStore(pepper, engine=engine, usage_executor=usage_executor)
    sessions = DatabaseSessionVerifier(
        pepper,
        engine=engine,
        default_ttl=timedelta(hours=settings.session_ttl_hours),
    )
    vault = CredentialVault(crypto, engine=engine)
    request_logger = RequestLogger(engine=engine)
    resolver = IdentityResolver(api_keys, sessions, cookie_name=settings.session_cookie_name)
    executor = tool_executor or CatalogueToolExecutor(
        base_url=settings.tool_executor_url,
        timeout=settings.tool_executor_timeout_s,
        protocol_version=settings.protocol_version,
    )
    dispatcher = GatewayDispatcher(resolver, vault, request_logger, executor, settings)

    return GatewayServices(
        settings=settings,
        crypto=crypto,
        api_keys=api_keys,
        sessions=sessions,
        vault=vault,
        request_logger=request_logger,
        resolver=resolver,
        executor=executor,
        dispatcher=dispatcher,
        usage_executor=usage_executor,
    )


def get_services(request: Request) -> GatewayServices:
    """FastAPI dependency."""
    return request.app.state.services
