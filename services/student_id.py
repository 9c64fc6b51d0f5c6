"""Generate unique student identifiers (STU + 6 random digits)."""
import secrets

from sqlalchemy.orm import Session

from database.models import Profile
from core.exceptions import InternalError
from core.logger import logger
import config


def generate_student_id(db: Session) -> str:
    """Draw STU###### identifiers until one is unused; give up after STUDENT_ID_MAX_ATTEMPTS."""
    for attempt in range(config.STUDENT_ID_MAX_ATTEMPTS):
        candidate = f"{config.STUDENT_ID_PREFIX}{100000 + secrets.randbelow(900000)}"
        taken = db.query(Profile.id).filter(Profile.student_id == candidate).first()
        if not taken:
            return candidate
        logger.warning(f"Student ID collision on {candidate} (attempt {attempt + 1})")
    raise InternalError("Could not allocate a unique student ID")
