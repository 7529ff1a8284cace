import logging
from typing import Any, Optional

from care.models import AuditEvent, User

logger = logging.getLogger(__name__)


def log_action(*, user, action: str, object_type: Optional[str] = None, object_id: Optional[int] = None,
               detail: Optional[dict[str, Any]] = None) -> AuditEvent:
    """Record who did what to which object; anonymous or unsaved actors are stored as NULL."""
    actor = user if isinstance(user, User) and user.pk else None
    event = AuditEvent.objects.create(user=actor, action=action, object_type=object_type,
                                      object_id=object_id, detail=detail or {})
    logger.debug('audit %s %s:%s by %s', action, object_type, object_id, actor.pk if actor else '-')
    return event
