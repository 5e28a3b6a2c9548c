from django.contrib import admin, messages

from .lifecycle import transition_status
from .models import ActorRole, Complaint, ComplaintPhoto, Department, Status, StatusHistoryEntry


class ComplaintPhotoInline(admin.TabularInline):
    model = ComplaintPhoto
    extra = 0
    readonly_fields = ("uploaded_at", "original_filename")


class StatusHistoryInline(admin.TabularInline):
    model = StatusHistoryEntry
    extra = 0
    can_delete = False
    fields = ("created_at", "previous_status", "new_status", "actor_role", "notes")
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


def _transition_action(new_status, description):
    def action(modeladmin, request, queryset):
        for complaint in queryset:
            transition_status(complaint.pk, new_status, actor_role=ActorRole.ADMIN)
        modeladmin.message_user(
            request,
            f"{queryset.count()} complaint(s) marked {new_status}.",
            messages.SUCCESS,
        )

    action.__name__ = f"mark_{new_status.lower().replace(' ', '_')}"
    action.short_description = description
    return action


@admin.register(Department)
class DepartmentAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "contact_email", "contact_phone")
    search_fields = ("id", "name", "contact_email")
    prepopulated_fields = {"id": ("name",)}

    def get_readonly_fields(self, request, obj=None):
        return ("id",) if obj is not None else ()

    def get_prepopulated_fields(self, request, obj=None):
        return {} if obj is not None else self.prepopulated_fields


@admin.register(Complaint)
class ComplaintAdmin(admin.ModelAdmin):
    list_display = (
        "title",
        "category",
        "priority",
        "status",
        "assigned_department",
        "upvotes",
        "date_submitted",
    )
    list_filter = ("status", "category", "priority", "assigned_department")
    search_fields = ("title", "description", "location")
    # Status and assignment change only through the lifecycle so the ledger stays complete.
    readonly_fields = (
        "id",
        "status",
        "assigned_department",
        "assigned_to_user",
        "actual_completion_date",
        "upvotes",
        "created_at",
        "updated_at",
    )
    inlines = [StatusHistoryInline, ComplaintPhotoInline]
    actions = [
        _transition_action(Status.IN_PROGRESS, "Mark selected complaints In Progress"),
        _transition_action(Status.ON_HOLD, "Put selected complaints On Hold"),
        _transition_action(Status.RESOLVED, "Mark selected complaints Resolved"),
    ]


@admin.register(StatusHistoryEntry)
class StatusHistoryEntryAdmin(admin.ModelAdmin):
    list_display = ("complaint", "previous_status", "new_status", "actor_role", "created_at")
    list_filter = ("new_status", "actor_role")
    search_fields = ("complaint__title", "notes")

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
