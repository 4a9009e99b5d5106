"""Repository for User database operations."""

import logging
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Session

from looptrack.models.user import StreakState, User
from looptrack.database.models import UserDB

logger = logging.getLogger(__name__)


class UserRepository:
    """Repository for User database operations."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: str) -> Optional[User]:
        """Get user by ID."""
        user_db = self.db.query(UserDB).filter(UserDB.id == user_id).first()
        return user_db.to_pydantic() if user_db else None

    def get_for_update(self, user_id: str) -> Optional[User]:
        """Get user by ID, locking the row until the current transaction ends.

        `FOR UPDATE` is a no-op on SQLite, where the in-process owner lock is what serializes writers.
        """
        user_db = (
            self.db.query(UserDB)
            .filter(UserDB.id == user_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        return user_db.to_pydantic() if user_db else None

    def create_or_update(self, user: User) -> User:
        """Create or update user profile (upsert). Streak and sync fields are left alone on update.

        Args:
            user: User object to create or update

        Returns:
            Created or updated User object
        """
        user_db = self.db.query(UserDB).filter(UserDB.id == user.id).first()

        if user_db:
            # Update existing user
            user_db.email = user.email
            user_db.name = user.name
            user_db.timezone = user.timezone
            user_db.day_cutoff_hour = user.day_cutoff_hour
            user_db.updated_at = user.updated_at
            try:
                self.db.commit()
                self.db.refresh(user_db)
                logger.debug(f"Updated user {user.id}: {user.email}")
                return user_db.to_pydantic()
            except Exception as e:
                self.db.rollback()
                logger.error(f"Failed to update user {user.id}: {type(e).__name__}: {str(e)}")
                raise
        else:
            # Create new user
            try:
                user_db = UserDB.from_pydantic(user)
                self.db.add(user_db)
                self.db.commit()
                self.db.refresh(user_db)
                logger.debug(f"Created user {user.id}: {user.email}")
                return user_db.to_pydantic()
            except Exception as e:
                self.db.rollback()
                logger.error(f"Failed to create user {user.id}: {type(e).__name__}: {str(e)}")
                raise

    def save_streak(self, user_id: str, state: StreakState, *, commit: bool = True) -> bool:
        """Write streak fields. Returns False if the user does not exist."""
        user_db = self.db.query(UserDB).filter(UserDB.id == user_id).first()
        if not user_db:
            return False
        user_db.current_streak = state.current_streak
        user_db.best_streak = state.best_streak
        user_db.last_active_date = state.last_active_date
        try:
            if commit:
                self.db.commit()
            else:
                self.db.flush()
            logger.debug(
                f"Saved streak for user {user_id}: current={state.current_streak} "
                f"best={state.best_streak} last_active={state.last_active_date}"
            )
            return True
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to save streak for user {user_id}: {type(e).__name__}: {str(e)}")
            raise

    def touch_last_sync(self, user_id: str, when: Optional[datetime] = None) -> Optional[datetime]:
        """Advance last_sync_at. Returns the stored value, or None if the user does not exist."""
        user_db = self.db.query(UserDB).filter(UserDB.id == user_id).first()
        if not user_db:
            return None
        user_db.last_sync_at = when or datetime.utcnow()
        try:
            self.db.commit()
            logger.debug(f"User {user_id} last_sync_at -> {user_db.last_sync_at.isoformat()}")
            return user_db.last_sync_at
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update last_sync_at for user {user_id}: {type(e).__name__}: {str(e)}")
            raise
