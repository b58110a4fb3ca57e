"""
User management for StagePass.

Handles participant identity and stage membership.
"""

import logging
from typing import List, Optional

from .database import Database, UserRepository
from .errors import ValidationError
from .models import User


class UserManager:
    """Manages user identity, display names and stage membership."""

    def __init__(self, database: Database):
        """
        Initialize UserManager.

        Args:
            database: Database instance for persistence
        """
        self.database = database
        self.repository = UserRepository(database)
        self.logger = logging.getLogger(__name__)

    def get_or_create_user(self, user_id: str, display_name: str) -> User:
        """
        Get or create a user by ID.

        If the user exists, updates their display_name if it has changed.
        If not, creates a new user record.

        Args:
            user_id: UUID of the user
            display_name: Display name for the user

        Returns:
            User object
        """
        display_name = (display_name or "").strip()
        if not display_name:
            raise ValidationError("Display name cannot be empty")

        user = self.repository.get_by_id(user_id)

        if user:
            if user.display_name != display_name:
                self.repository.update_display_name(user_id, display_name)
                user = self.repository.get_by_id(user_id)
            return user

        self.logger.info("Created user %s (%s)", display_name, user_id)
        return self.repository.create(user_id, display_name)

    def get_user(self, user_id: str) -> Optional[User]:
        """Get a user by ID, or None if not found."""
        return self.repository.get_by_id(user_id)

    def assign_to_stage(self, user_id: str, stage_id: Optional[str]) -> bool:
        """Move a user into a stage (or out of any stage when stage_id is None)."""
        if not self.repository.set_stage(user_id, stage_id):
            self.logger.warning("Cannot assign unknown user %s to stage", user_id)
            return False
        self.logger.info("User %s assigned to stage %s", user_id, stage_id)
        return True

    def list_participants(self, stage_id: str) -> List[User]:
        """Participants of a stage, sorted by display name."""
        return self.repository.get_by_stage(stage_id)

    def count_participants(self, stage_id: str) -> int:
        return self.repository.count_by_stage(stage_id)
