# budget_auth/services/runtime.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from budget_auth.core.config import Settings
from budget_auth.core.security import utc_now
from budget_auth.core.tokens import TokenIssuer
from budget_auth.db.database import Database, create_database
from budget_auth.services.credentials import CredentialStore
from budget_auth.services.ledger import TokenLedger
from budget_auth.services.oauth2 import OAuth2Server
from budget_auth.services.rate_limit import LoginRateLimiter

logger = logging.getLogger(__name__)


class AuthRuntime:
    """Holds the service instances for one app; built once from explicit settings."""

    def __init__(
        self,
        settings: Settings,
        database: Optional[Database] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.settings = settings
        self.database = database or create_database(settings)
        self.clock = clock
        self.credentials = CredentialStore(self.database, clock=clock)
        self.ledger = TokenLedger(self.database, settings, clock=clock)
        self.issuer = TokenIssuer(settings, self.ledger, clock=clock)
        self.oauth2 = OAuth2Server(self.credentials, self.ledger, self.issuer)
        self.login_limiter = LoginRateLimiter(
            settings.LOGIN_RATE_LIMIT, settings.LOGIN_RATE_WINDOW_SECONDS, clock=clock
        )
        logger.info("runtime initialized (backend=%s)", self.database.backend)

    async def start(self) -> None:
        from budget_auth.db.init_db import init_db

        await self.database.ready()
        await init_db(self)

    async def stop(self) -> None:
        await self.database.dispose()
