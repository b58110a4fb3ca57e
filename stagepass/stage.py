"""
Stage lifecycle for StagePass.

Creating a stage, resolving join codes, joining and terminating.
"""

import logging
import random
import re
from typing import Dict, Optional

from .database import Database, StageRepository
from .errors import ValidationError
from .models import Stage, User
from .user import UserManager

JOIN_CODE_PATTERN = re.compile(r"^\d{6}$")
PRIVACY_SETTINGS = ("public", "private")


class StageManager:
    """Creates, looks up and terminates stages."""

    # Attempts at finding an unused join code before giving up
    MAX_JOIN_CODE_ATTEMPTS = 20

    def __init__(self, database: Database, user_manager: UserManager, rng: Optional[random.Random] = None):
        """
        Initialize StageManager.

        Args:
            database: Database instance for persistence
            user_manager: UserManager used for membership
            rng: Random source for join codes (tests pass a seeded one)
        """
        self.database = database
        self.repository = StageRepository(database)
        self.user_manager = user_manager
        self._rng = rng or random.SystemRandom()
        self.logger = logging.getLogger(__name__)

    def _generate_join_code(self) -> str:
        for _ in range(self.MAX_JOIN_CODE_ATTEMPTS):
            code = f"{self._rng.randrange(1_000_000):06d}"
            if not self.repository.join_code_exists(code):
                return code
        raise ValidationError("Could not allocate a join code, try again")

    def create_stage(self, name: str, max_capacity: int = 10, privacy: str = "public") -> Stage:
        """
        Create a stage with a fresh six digit join code.

        Raises:
            ValidationError: empty name, capacity <= 0 or unknown privacy setting
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Stage name cannot be empty")
        if max_capacity is None or max_capacity <= 0:
            raise ValidationError("Maximum capacity must be greater than 0")
        if privacy not in PRIVACY_SETTINGS:
            raise ValidationError(f"Privacy must be one of {', '.join(PRIVACY_SETTINGS)}")

        stage = self.repository.create(
            name=name,
            join_code=self._generate_join_code(),
            max_capacity=max_capacity,
            is_private=privacy == "private",
        )
        self.logger.info(
            "Created %s stage %s (ID: %s, join code: %s, capacity: %s)",
            privacy,
            stage.name,
            stage.id,
            stage.join_code,
            stage.max_capacity,
        )
        return stage

    @staticmethod
    def validate_join_code(join_code: str) -> str:
        join_code = (join_code or "").strip()
        if not JOIN_CODE_PATTERN.match(join_code):
            raise ValidationError("Join code must be exactly 6 digits")
        return join_code

    def lookup_stage_id(self, join_code: str) -> Optional[str]:
        """Id of the live stage with this join code, or None."""
        stage = self.repository.get_by_join_code(self.validate_join_code(join_code))
        if not stage or stage.is_terminated:
            return None
        return stage.id

    def get_stage(self, stage_id: str) -> Optional[Stage]:
        return self.repository.get_by_id(stage_id)

    def get_stage_info(self, stage_id: str) -> Optional[Dict[str, str]]:
        """Join code and name of a stage, or None if it does not exist."""
        stage = self.repository.get_by_id(stage_id)
        if not stage:
            return None
        return {"join_code": stage.join_code, "name": stage.name}

    def join_stage(self, user: User, join_code: str) -> Stage:
        """
        Put a user into the stage with the given join code.

        Raises:
            ValidationError: malformed code, no such live stage, or stage full
        """
        stage_id = self.lookup_stage_id(join_code)
        if not stage_id:
            raise ValidationError("No active stage with that join code")
        stage = self.repository.get_by_id(stage_id)

        if user.stage_id != stage.id:
            if self.user_manager.count_participants(stage.id) >= stage.max_capacity:
                raise ValidationError("Stage is full")
            self.user_manager.assign_to_stage(user.id, stage.id)
        return stage

    def terminate_stage(self, stage_id: str) -> bool:
        """Terminate a stage, deleting its songs and detaching participants."""
        if not self.repository.terminate(stage_id):
            self.logger.warning("Cannot terminate unknown stage %s", stage_id)
            return False
        self.logger.info("Terminated stage %s", stage_id)
        return True
