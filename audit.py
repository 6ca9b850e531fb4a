import logging
from datetime import datetime
from typing import Optional

from schemas import AuditLog

logger = logging.getLogger(__name__)

ANONYMOUS = "anonymous"


def record_audit(repo, actor: Optional[str], action: str, target_id: Optional[str], description: str) -> dict:
    entry = AuditLog(
        actor=actor or ANONYMOUS,
        action=action,
        target_id=target_id,
        description=description,
        timestamp=datetime.utcnow(),
    ).model_dump()
    repo.add_audit(entry)
    logger.info("audit %s by %s on %s: %s", action, entry["actor"], target_id, description)
    return entry
