"""Status transitions shared by the admin and department workflows.

Any status may move to any other status. The side effects are fixed:
moving to Resolved stamps ``actual_completion_date`` with today's date,
moving anywhere else clears it. The complaint update and its ledger entry
commit together or not at all.
"""

import logging

from django.core.exceptions import ValidationError
from django.db import DatabaseError, transaction
from django.utils import timezone

from .models import ActorRole, Status, StatusHistoryEntry
from .notifications import send_status_change_email
from .store import lock_complaint

logger = logging.getLogger(__name__)

NOTES_FIELD_BY_ROLE = {
    ActorRole.ADMIN: "admin_notes",
    ActorRole.DEPARTMENT: "resolution_notes",
}


def validate_status(value):
    if value not in Status.values:
        raise ValidationError({"new_status": f"'{value}' is not a valid status."})
    return Status(value)


def validate_actor_role(value):
    if value not in ActorRole.values:
        raise ValidationError({"actor_role": f"'{value}' is not a valid actor role."})
    return ActorRole(value)


def apply_status(complaint, new_status):
    """Set ``status`` and keep ``actual_completion_date`` consistent with it."""
    complaint.status = new_status
    if new_status == Status.RESOLVED:
        complaint.actual_completion_date = timezone.localdate()
    else:
        complaint.actual_completion_date = None


def record_history(complaint, previous_status, new_status, notes, actor_role):
    return StatusHistoryEntry.objects.create(
        complaint=complaint,
        previous_status=previous_status,
        new_status=new_status,
        notes=notes or "",
        actor_role=actor_role,
    )


def transition_status(complaint_id, new_status, notes=None, actor_role=ActorRole.ADMIN):
    new_status = validate_status(new_status)
    actor_role = validate_actor_role(actor_role)

    try:
        with transaction.atomic():
            complaint = lock_complaint(complaint_id)
            previous_status = complaint.status
            apply_status(complaint, new_status)
            update_fields = ["status", "actual_completion_date", "updated_at"]

            notes_field = NOTES_FIELD_BY_ROLE.get(actor_role)
            if notes and notes_field:
                setattr(complaint, notes_field, notes)
                update_fields.append(notes_field)

            complaint.save(update_fields=update_fields)
            record_history(complaint, previous_status, new_status, notes, actor_role)

            if previous_status != new_status:
                transaction.on_commit(
                    lambda: send_status_change_email(complaint, previous_status, new_status)
                )
    except DatabaseError:
        logger.exception("Status transition of complaint %s to %s rolled back", complaint_id, new_status)
        raise

    logger.info(
        "Complaint %s moved %s -> %s by %s",
        complaint.pk,
        previous_status,
        new_status,
        actor_role,
    )
    return complaint
