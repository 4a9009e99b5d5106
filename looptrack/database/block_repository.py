"""Repository for Block database operations."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import asc, func

from looptrack.models.block import Block
from looptrack.database.models import BlockDB

logger = logging.getLogger(__name__)

BLOCK_MUTABLE_FIELDS = {
    "name",
    "description",
    "icon",
    "color",
    "sort_order",
    "is_archived",
    "active_days",
    "reminder_enabled",
    "reminder_hour",
}


class BlockRepository:
    """Repository for Block database operations."""

    def __init__(self, db: Session):
        self.db = db

    def create(self, block: Block) -> Block:
        """Create a new block."""
        try:
            block_db = BlockDB.from_pydantic(block)
            self.db.add(block_db)
            self.db.commit()
            self.db.refresh(block_db)
            logger.debug(f"Created block {block.id}: {block.name[:50]}")
            return block_db.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create block {block.id}: {type(e).__name__}: {str(e)}")
            raise

    def get(self, user_id: str, block_id: str) -> Optional[Block]:
        """Get a live block by ID for a specific user."""
        block_db = self.db.query(BlockDB).filter(
            BlockDB.id == block_id,
            BlockDB.user_id == user_id,
            BlockDB.deleted_at.is_(None),
        ).first()
        return block_db.to_pydantic() if block_db else None

    def get_any(self, block_id: str) -> Optional[Block]:
        """Get a block by ID regardless of owner or deletion (id collision checks)."""
        block_db = self.db.query(BlockDB).filter(BlockDB.id == block_id).first()
        return block_db.to_pydantic() if block_db else None

    def changed_since(self, user_id: str, since: Optional[datetime]) -> List[Block]:
        """Live blocks modified strictly after `since` (all live blocks if None), oldest change first."""
        query = self.db.query(BlockDB).filter(
            BlockDB.user_id == user_id,
            BlockDB.deleted_at.is_(None),
        )
        if since is not None:
            query = query.filter(BlockDB.updated_at > since)
        return [b.to_pydantic() for b in query.order_by(asc(BlockDB.updated_at)).all()]

    def count_active(self, user_id: str) -> int:
        return self.db.query(BlockDB).filter(
            BlockDB.user_id == user_id,
            BlockDB.deleted_at.is_(None),
        ).count()

    def next_sort_order(self, user_id: str) -> int:
        """Sort order that places a new block after the user's existing ones."""
        current_max = self.db.query(func.max(BlockDB.sort_order)).filter(
            BlockDB.user_id == user_id,
            BlockDB.deleted_at.is_(None),
        ).scalar()
        return (current_max if current_max is not None else -1) + 1

    def update(self, user_id: str, block_id: str, patch: Dict[str, Any], client_modified_at: Optional[datetime] = None) -> Block:
        """Merge `patch` into a live block. Keys absent from `patch` keep their value.

        Raises:
            ValueError: if the block does not exist for this user, or a key is not writable
        """
        unknown = set(patch) - BLOCK_MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Block fields not writable: {sorted(unknown)}")

        block_db = self.db.query(BlockDB).filter(
            BlockDB.id == block_id,
            BlockDB.user_id == user_id,
            BlockDB.deleted_at.is_(None),
        ).first()
        if not block_db:
            raise ValueError(f"Block {block_id} not found")

        now = datetime.utcnow()
        for key, value in patch.items():
            setattr(block_db, key, value)
        block_db.updated_at = now
        block_db.client_modified_at = client_modified_at or now

        try:
            self.db.commit()
            self.db.refresh(block_db)
            logger.debug(f"Updated block {block_id}: {sorted(patch)}")
            return block_db.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update block {block_id}: {type(e).__name__}: {str(e)}")
            raise

    def delete(self, user_id: str, block_id: str) -> bool:
        """Soft-delete a block by ID for a specific user."""
        block_db = self.db.query(BlockDB).filter(
            BlockDB.id == block_id,
            BlockDB.user_id == user_id,
            BlockDB.deleted_at.is_(None),
        ).first()
        if not block_db:
            return False

        try:
            now = datetime.utcnow()
            block_db.deleted_at = now
            block_db.updated_at = now
            self.db.commit()
            logger.debug(f"Soft-deleted block {block_id}")
            return True
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to soft-delete block {block_id}: {type(e).__name__}: {str(e)}")
            raise
