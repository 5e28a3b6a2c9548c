import logging

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.db import DatabaseError, transaction

from . import registry
from .exceptions import NotFound
from .lifecycle import apply_status, record_history, validate_actor_role
from .models import ActorRole, Category, Status
from .store import lock_complaint

logger = logging.getLogger(__name__)

User = get_user_model()

# Advisory only: pre-selects a department in the admin UI.
CATEGORY_DEPARTMENT_SUGGESTIONS = {
    Category.ROADS: "Roads & Infrastructure",
    Category.UTILITIES: "Utilities",
    Category.SANITATION: "Sanitation",
    Category.PUBLIC_SAFETY: "Public Safety",
    Category.WATER_SUPPLY: "Utilities",
    Category.PUBLIC_TRANSPORT: "Public Transport",
    Category.PARKS: "Parks & Recreation",
}


def suggest_department(category):
    name = CATEGORY_DEPARTMENT_SUGGESTIONS.get(category)
    if name is None:
        return None
    return registry.find_department_by_name(name)


def _get_staff_user(user_id):
    try:
        user = User.objects.get(pk=user_id)
    except (User.DoesNotExist, ValueError, TypeError) as error:
        raise NotFound("User", user_id) from error
    if not user.is_staff:
        raise ValidationError({"user_id": "Assigned user must be a staff account."})
    return user


def assign_complaint(complaint_id, department_id, user_id=None, actor_role=ActorRole.ADMIN):
    actor_role = validate_actor_role(actor_role)
    department = registry.get_department(department_id, use_cache=False)
    assignee = _get_staff_user(user_id) if user_id is not None else None

    try:
        with transaction.atomic():
            complaint = lock_complaint(complaint_id)
            previous_status = complaint.status
            complaint.assigned_department = department
            complaint.assigned_to_user = assignee
            apply_status(complaint, Status.IN_PROGRESS)
            complaint.save(
                update_fields=[
                    "assigned_department",
                    "assigned_to_user",
                    "status",
                    "actual_completion_date",
                    "updated_at",
                ]
            )
            record_history(
                complaint,
                previous_status,
                Status.IN_PROGRESS,
                f"Assigned to department: {department.name}",
                actor_role,
            )
    except DatabaseError:
        logger.exception("Assignment of complaint %s to %s rolled back", complaint_id, department_id)
        raise

    logger.info("Complaint %s assigned to %s", complaint.pk, department.pk)
    return complaint


def unassign_complaint(complaint_id, actor_role=ActorRole.ADMIN):
    """Detach a complaint from its department. The status is left as it is."""
    actor_role = validate_actor_role(actor_role)

    try:
        with transaction.atomic():
            complaint = lock_complaint(complaint_id)
            department = complaint.assigned_department
            if department is None:
                raise ValidationError({"department_id": "Complaint is not assigned to a department."})
            complaint.assigned_department = None
            complaint.assigned_to_user = None
            complaint.save(update_fields=["assigned_department", "assigned_to_user", "updated_at"])
            record_history(
                complaint,
                complaint.status,
                complaint.status,
                f"Unassigned from department: {department.name}",
                actor_role,
            )
    except DatabaseError:
        logger.exception("Unassignment of complaint %s rolled back", complaint_id)
        raise

    logger.info("Complaint %s unassigned from %s", complaint.pk, department.pk)
    return complaint
