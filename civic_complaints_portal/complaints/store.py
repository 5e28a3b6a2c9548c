"""Persistence operations for complaints.

Every write here either runs as a single UPDATE statement or holds the
complaint row lock (``select_for_update``) for the duration of a
``transaction.atomic`` block, so concurrent admin and department requests
cannot overwrite each other's changes.
"""

import logging

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import F, Q
from django.utils import timezone
from django.utils.dateparse import parse_date

from .exceptions import ConflictError, NotFound
from .forms import ComplaintForm
from .models import Category, Complaint, Priority, Status
from .notifications import send_submission_email

logger = logging.getLogger(__name__)

UNASSIGNED = "unassigned"

UPDATABLE_FIELDS = {
    "title",
    "description",
    "category",
    "priority",
    "location",
    "latitude",
    "longitude",
    "admin_notes",
    "resolution_notes",
    "estimated_completion_date",
}


def create_complaint(data, user=None, resolver=None):
    form = ComplaintForm(data, resolver=resolver)
    if not form.is_valid():
        raise ValidationError(form.errors.as_data())

    with transaction.atomic():
        complaint = form.save(commit=False)
        complaint.user = user
        complaint.save()
        transaction.on_commit(lambda: send_submission_email(complaint))

    logger.info("Complaint %s submitted in category %s", complaint.pk, complaint.category)
    return complaint


def get_complaint(complaint_id, queryset=None):
    queryset = queryset if queryset is not None else Complaint.objects.all()
    try:
        return queryset.get(pk=complaint_id)
    except (Complaint.DoesNotExist, ValidationError) as error:
        # Malformed UUIDs surface as ValidationError from the field lookup.
        raise NotFound("Complaint", complaint_id) from error


def lock_complaint(complaint_id):
    """Fetch a complaint with its row locked. Call inside ``transaction.atomic``."""
    return get_complaint(complaint_id, Complaint.objects.select_for_update())


def _enum_filter(params, name, choices):
    value = (params.get(name) or "").strip()
    if value and value not in choices.values:
        raise ValidationError({name: f"'{value}' is not a valid {name}."})
    return value


def parse_date_param(params, name):
    value = (params.get(name) or "").strip()
    if not value:
        return None
    try:
        parsed = parse_date(value)
    except ValueError:
        parsed = None
    if parsed is None:
        raise ValidationError({name: "Enter a date in YYYY-MM-DD format."})
    return parsed


def list_complaints(params=None):
    params = params or {}
    query = (params.get("q") or "").strip()
    category = _enum_filter(params, "category", Category)
    status = _enum_filter(params, "status", Status)
    priority = _enum_filter(params, "priority", Priority)
    department = (params.get("department") or "").strip()
    start_date = parse_date_param(params, "start_date")
    end_date = parse_date_param(params, "end_date")

    queryset = Complaint.objects.select_related("assigned_department")
    if query:
        queryset = queryset.filter(Q(title__icontains=query) | Q(description__icontains=query))
    if category:
        queryset = queryset.filter(category=category)
    if status:
        queryset = queryset.filter(status=status)
    if priority:
        queryset = queryset.filter(priority=priority)
    if department == UNASSIGNED:
        queryset = queryset.filter(assigned_department__isnull=True)
    elif department:
        queryset = queryset.filter(assigned_department_id=department)
    if start_date:
        queryset = queryset.filter(date_submitted__date__gte=start_date)
    if end_date:
        queryset = queryset.filter(date_submitted__date__lte=end_date)
    return queryset.order_by("-created_at")


def update_complaint(complaint_id, patch, expected_updated_at=None):
    unknown = sorted(set(patch) - UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError({field: "This field cannot be updated." for field in unknown})

    with transaction.atomic():
        complaint = lock_complaint(complaint_id)
        if expected_updated_at is not None and complaint.updated_at != expected_updated_at:
            raise ConflictError(
                f"Complaint {complaint.pk} was modified at {complaint.updated_at.isoformat()}; reload and retry."
            )
        for field, value in patch.items():
            setattr(complaint, field, value)
        complaint.full_clean()
        complaint.save()

    logger.info("Complaint %s updated: %s", complaint.pk, ", ".join(sorted(patch)))
    return complaint


def increment_upvote(complaint_id):
    try:
        updated = Complaint.objects.filter(pk=complaint_id).update(
            upvotes=F("upvotes") + 1,
            updated_at=timezone.now(),
        )
    except ValidationError as error:
        raise NotFound("Complaint", complaint_id) from error
    if not updated:
        raise NotFound("Complaint", complaint_id)
    return get_complaint(complaint_id)
