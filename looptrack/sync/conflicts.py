"""Conflict-resolution strategies for pushed updates and deletes.

A resolver only decides whether a change to an existing row conflicts with
what the server already has. Apply failures (missing rows, bad fields) are
rejected by the change processor whatever the strategy.
"""

import logging
import os
from datetime import datetime
from enum import Enum
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


class ConflictStrategy(Enum):
    """Strategy for handling sync conflicts."""

    LAST_WRITE_WINS = "last_write_wins"  # Most recent client edit wins
    SERVER_WINS = "server_wins"  # Rows changed since the client's last sync are kept
    CLIENT_WINS = "client_wins"  # Every applicable change is applied


class ConflictResolver:
    strategy: ConflictStrategy

    def conflict_reason(
        self,
        *,
        client_timestamp: Optional[datetime],
        row_client_modified_at: Optional[datetime],
        row_updated_at: Optional[datetime],
        last_sync_at: Optional[datetime],
    ) -> Optional[str]:
        """Reason the change must not be applied, or None to apply it."""
        raise NotImplementedError


class LastWriteWinsResolver(ConflictResolver):
    """Reject a change whose client timestamp is older than the row's last applied write.

    Equal timestamps apply again, so re-sending an unacknowledged batch is harmless.
    Changes without a timestamp always apply.
    """

    strategy = ConflictStrategy.LAST_WRITE_WINS

    def conflict_reason(self, *, client_timestamp, row_client_modified_at, row_updated_at, last_sync_at):
        if client_timestamp is None or row_client_modified_at is None:
            return None
        if client_timestamp < row_client_modified_at:
            return "stale: server holds a newer edit"
        return None


class ServerWinsResolver(ConflictResolver):
    """Reject changes to rows the server modified after the client's last sync."""

    strategy = ConflictStrategy.SERVER_WINS

    def conflict_reason(self, *, client_timestamp, row_client_modified_at, row_updated_at, last_sync_at):
        if last_sync_at is None or row_updated_at is None:
            return None
        if row_updated_at > last_sync_at:
            return "server modified since last sync"
        return None


class ClientWinsResolver(ConflictResolver):
    strategy = ConflictStrategy.CLIENT_WINS

    def conflict_reason(self, *, client_timestamp, row_client_modified_at, row_updated_at, last_sync_at):
        return None


_RESOLVERS = {
    ConflictStrategy.LAST_WRITE_WINS: LastWriteWinsResolver,
    ConflictStrategy.SERVER_WINS: ServerWinsResolver,
    ConflictStrategy.CLIENT_WINS: ClientWinsResolver,
}


def get_resolver(strategy: Optional[str] = None) -> ConflictResolver:
    """Resolver for `strategy`, or for SYNC_CONFLICT_STRATEGY when not given.

    Unknown names fall back to last-write-wins.
    """
    name = strategy or os.getenv("SYNC_CONFLICT_STRATEGY", ConflictStrategy.LAST_WRITE_WINS.value)
    try:
        chosen = ConflictStrategy(name.strip().lower())
    except ValueError:
        logger.warning(f"Unknown SYNC_CONFLICT_STRATEGY {name!r}; using last_write_wins")
        chosen = ConflictStrategy.LAST_WRITE_WINS
    return _RESOLVERS[chosen]()
