import logging
from typing import Any, Dict, Optional

from django.contrib.auth import get_user_model

from billing.models import AuditEvent

User = get_user_model()

logger = logging.getLogger(__name__)


def log_action(
    *,
    user: Optional[User],
    action: str,
    object_type: Optional[str] = None,
    object_id: Optional[int] = None,
    detail: Optional[Dict[str, Any]] = None,
) -> AuditEvent:
    """Append an audit event. Anonymous or unsaved users are recorded as no user."""
    actor = user if isinstance(user, User) and getattr(user, 'pk', None) else None
    event = AuditEvent.objects.create(
        user=actor,
        action=action,
        object_type=object_type,
        object_id=object_id,
        detail=detail or {},
    )
    logger.debug('audit %s on %s %s by %s', action, object_type, object_id, actor.pk if actor else None)
    return event
