"""
Audit Trail - append-only record of state-changing actions.

Entries are written through the open transaction of the action they
document. A failed insert propagates, so the enclosing unit rolls back:
an unaudited change is as invalid as an unrecorded one.
"""

from .models import AuditEntry, new_code
from .ports import AuditAction, Transaction

_MAX_DETAIL_LENGTH = 1000


def record(
    tx: Transaction,
    actor_id: int | None,
    action: AuditAction,
    detail: str = "",
    origin: str | None = None,
) -> AuditEntry:
    """Append one audit entry inside ``tx`` and return it."""
    entry = AuditEntry(
        log_code=new_code("LOG"),
        actor_id=actor_id,
        action=action,
        detail=(detail or "")[:_MAX_DETAIL_LENGTH],
        origin=origin,
    )
    tx.append_audit(entry)
    return entry
