import os
import uuid

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone

from .exceptions import ImmutableRecordError


class Category(models.TextChoices):
    ROADS = "Roads", "Roads"
    UTILITIES = "Utilities", "Utilities"
    SANITATION = "Sanitation", "Sanitation"
    PUBLIC_SAFETY = "Public Safety", "Public Safety"
    WATER_SUPPLY = "Water Supply", "Water Supply"
    PUBLIC_TRANSPORT = "Public Transport", "Public Transport"
    PARKS = "Parks", "Parks"
    OTHER = "Other", "Other"


class Priority(models.TextChoices):
    LOW = "Low", "Low"
    MEDIUM = "Medium", "Medium"
    HIGH = "High", "High"


class Status(models.TextChoices):
    PENDING = "Pending", "Pending"
    IN_PROGRESS = "In Progress", "In Progress"
    ON_HOLD = "On Hold", "On Hold"
    RESOLVED = "Resolved", "Resolved"


class ActorRole(models.TextChoices):
    CITIZEN = "citizen", "Citizen"
    ADMIN = "admin", "Admin"
    DEPARTMENT = "department", "Department"
    SYSTEM = "system", "System"


class Department(models.Model):
    id = models.SlugField(max_length=64, primary_key=True)
    name = models.CharField(max_length=120, unique=True)
    description = models.TextField(blank=True)
    contact_email = models.EmailField()
    contact_phone = models.CharField(max_length=32, blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


class Complaint(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    title = models.CharField(max_length=255)
    description = models.TextField()
    category = models.CharField(max_length=32, choices=Category.choices)
    priority = models.CharField(
        max_length=16,
        choices=Priority.choices,
        default=Priority.MEDIUM,
    )
    status = models.CharField(
        max_length=16,
        choices=Status.choices,
        default=Status.PENDING,
    )
    location = models.CharField(max_length=255)
    latitude = models.FloatField(null=True, blank=True)
    longitude = models.FloatField(null=True, blank=True)
    upvotes = models.PositiveIntegerField(default=0)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name="submitted_complaints",
        null=True,
        blank=True,
    )
    assigned_department = models.ForeignKey(
        Department,
        on_delete=models.PROTECT,
        related_name="complaints",
        null=True,
        blank=True,
    )
    assigned_to_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name="assigned_complaints",
        null=True,
        blank=True,
    )
    admin_notes = models.TextField(null=True, blank=True)
    resolution_notes = models.TextField(null=True, blank=True)
    estimated_completion_date = models.DateField(null=True, blank=True)
    actual_completion_date = models.DateField(null=True, blank=True)
    date_submitted = models.DateTimeField(default=timezone.now)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.title} ({self.status})"

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def clean(self):
        errors = {}
        if (self.latitude is None) != (self.longitude is None):
            errors["longitude" if self.longitude is None else "latitude"] = (
                "Latitude and longitude must be provided together."
            )
        if self.latitude is not None and not -90 <= self.latitude <= 90:
            errors["latitude"] = "Latitude must be between -90 and 90."
        if self.longitude is not None and not -180 <= self.longitude <= 180:
            errors["longitude"] = "Longitude must be between -180 and 180."
        if self.status == Status.RESOLVED and self.actual_completion_date is None:
            errors["actual_completion_date"] = "Resolved complaints require a completion date."
        if errors:
            raise ValidationError(errors)


class StatusHistoryEntry(models.Model):
    complaint = models.ForeignKey(
        Complaint,
        on_delete=models.PROTECT,
        related_name="status_history",
    )
    previous_status = models.CharField(max_length=16, choices=Status.choices, blank=True)
    new_status = models.CharField(max_length=16, choices=Status.choices)
    notes = models.TextField(blank=True)
    actor_role = models.CharField(
        max_length=16,
        choices=ActorRole.choices,
        default=ActorRole.SYSTEM,
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]
        verbose_name_plural = "status history entries"

    def __str__(self):
        return f"{self.complaint_id}: {self.new_status}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ImmutableRecordError("Status history entries cannot be modified.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableRecordError("Status history entries cannot be deleted.")


class ComplaintPhoto(models.Model):
    complaint = models.ForeignKey(
        Complaint,
        on_delete=models.CASCADE,
        related_name="photos",
    )
    file = models.FileField(upload_to="complaint_photos/%Y/%m/%d/")
    uploaded_at = models.DateTimeField(auto_now_add=True)
    original_filename = models.CharField(max_length=255, blank=True)

    class Meta:
        ordering = ["uploaded_at"]

    def __str__(self):
        return self.original_filename or os.path.basename(self.file.name)

    def save(self, *args, **kwargs):
        if not self.original_filename and self.file:
            self.original_filename = os.path.basename(self.file.name)
        super().save(*args, **kwargs)
