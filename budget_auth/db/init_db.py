# budget_auth/db/init_db.py
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from budget_auth.services.runtime import AuthRuntime

logger = logging.getLogger(__name__)


async def init_db(runtime: "AuthRuntime") -> None:
    """Seed the bootstrap admin and, when configured, the default OAuth client."""
    s = runtime.settings
    await runtime.credentials.ensure_admin_user(s.ADMIN_USER, s.ADMIN_PASSWORD)
    await runtime.credentials.ensure_default_client(
        s.OAUTH_DEFAULT_CLIENT_ID,
        s.OAUTH_DEFAULT_CLIENT_SECRET,
        redirect_uris=s.OAUTH_DEFAULT_REDIRECT_URIS,
    )
    removed = await runtime.ledger.prune_expired()
    logger.info("Bootstrap complete (pruned %d expired ledger rows)", removed)
