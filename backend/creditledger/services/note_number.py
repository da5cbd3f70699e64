"""Note number allocation.

Numbers look like ``CN-2026-0427``: merchant prefix, issue year and four
random digits. The existence check here only makes collisions rare; the
``UNIQUE(note_number)`` constraint is what actually guarantees uniqueness,
and the issuance service reallocates when the insert loses a race.
"""

import logging
import secrets
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.orm import Session

from creditledger.core.config import settings
from creditledger.models.shared import utc_now
from creditledger.repositories.credit_note_repository import CreditNoteRepository
from creditledger.repositories.merchant_settings_repository import MerchantSettingsRepository
from creditledger.services.errors import GenerationExhaustedError

logger = logging.getLogger(__name__)

RANDOM_DIGITS = 4


def format_note_number(prefix: str, year: int, sequence: int) -> str:
    return f"{prefix}-{year}-{sequence:0{RANDOM_DIGITS}d}"


class NoteNumberGenerator:
    """Bounded-retry allocator for globally unique note numbers."""

    def __init__(
        self,
        db: Session,
        max_attempts: int | None = None,
        randbelow: Callable[[int], int] = secrets.randbelow,
    ):
        self.db = db
        self.credit_note_repo = CreditNoteRepository(db)
        self.settings_repo = MerchantSettingsRepository(db)
        self.max_attempts = max_attempts or settings.NOTE_NUMBER_MAX_ATTEMPTS
        self._randbelow = randbelow

    def prefix_for(self, merchant_id: str) -> str:
        merchant_settings = self.settings_repo.get_by_merchant(merchant_id)
        if merchant_settings is not None and merchant_settings.note_prefix:
            return str(merchant_settings.note_prefix)
        return settings.NOTE_NUMBER_PREFIX

    def candidate(self, prefix: str, now: datetime | None = None) -> str:
        year = (now or utc_now()).year
        return format_note_number(prefix, year, self._randbelow(10**RANDOM_DIGITS))

    def allocate(self, merchant_id: str, now: datetime | None = None) -> str:
        """Return a note number not yet used by any instrument, deleted ones included.

        Raises:
            GenerationExhaustedError: every attempt collided.
        """
        prefix = self.prefix_for(merchant_id)
        for attempt in range(1, self.max_attempts + 1):
            note_number = self.candidate(prefix, now)
            if not self.credit_note_repo.note_number_exists(note_number):
                return note_number
            logger.debug("Note number %s taken (attempt %d)", note_number, attempt)

        logger.error(
            "Note number allocation exhausted after %d attempts for prefix %s",
            self.max_attempts,
            prefix,
        )
        raise GenerationExhaustedError(
            f"Could not allocate a unique note number after {self.max_attempts} attempts",
            attempts=self.max_attempts,
        )
