"""Activity log writer.

Appends the "who did what" records shown on the dashboards. Writing an
activity is a side channel: a failure here is logged and never reaches the
caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backoffice.models import Activity, ActivityEntityEnum, ActivityTypeEnum, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    """The user (or job) an action is attributed to."""
    uid: str
    display_name: Optional[str] = None
    email: Optional[str] = None

    @property
    def label(self) -> str:
        return self.display_name or self.email or "Unknown User"


SYSTEM_ACTOR = Actor(uid="system", display_name="Scheduled sync")


def log_activity(
    db: Session,
    type: Union[ActivityTypeEnum, str],
    entity_type: Union[ActivityEntityEnum, str],
    entity_id: str,
    entity_name: str,
    actor: Actor,
    quantity: Optional[int] = None,
) -> Optional[Activity]:
    """Record and commit an activity. Returns None when it could not be written.

    Commit your own changes first: a failed write rolls the session back.
    """
    try:
        activity = Activity(
            type=ActivityTypeEnum(type),
            entity_type=ActivityEntityEnum(entity_type),
            entity_id=str(entity_id),
            entity_name=entity_name,
            user_id=actor.uid,
            user_name=actor.label,
            quantity=quantity,
            date=utcnow(),
        )
        db.add(activity)
        db.commit()
        return activity
    except ValueError as e:
        logger.error("[ACTIVITY] Invalid activity %s %s %s: %s", type, entity_type, entity_id, e)
        return None
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("[ACTIVITY] Failed to log %s %s %s: %s", type, entity_type, entity_id, e)
        return None
