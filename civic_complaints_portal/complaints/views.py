import json
import logging

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.paginator import Paginator
from django.http import FileResponse, Http404, JsonResponse
from django.shortcuts import get_object_or_404
from django.utils import timezone
from django.utils.dateparse import parse_datetime
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt

from . import metrics, registry, store
from .assignment import assign_complaint, suggest_department, unassign_complaint
from .exceptions import ConflictError, NotFound
from .forms import PhotoUploadForm
from .geo import calculate_distance, resolve_address
from .lifecycle import transition_status
from .models import ActorRole, Complaint, ComplaintPhoto
from .serializers import (
    complaint_to_dict,
    department_to_dict,
    history_entry_to_dict,
    photo_to_dict,
)

logger = logging.getLogger(__name__)


def error_fields(error):
    if hasattr(error, "error_dict"):
        return error.message_dict
    return {"__all__": error.messages}


def parse_float(params, name):
    value = params.get(name)
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as error:
        raise ValidationError({name: "Enter a number."}) from error


def parse_coordinates(params):
    latitude = parse_float(params, "lat")
    longitude = parse_float(params, "lon")
    if (latitude is None) != (longitude is None):
        raise ValidationError({"lat": "Both lat and lon are required."})
    return latitude, longitude


@method_decorator(csrf_exempt, name="dispatch")
class JsonView(View):
    """Translates core errors into JSON responses with matching status codes."""

    def dispatch(self, request, *args, **kwargs):
        try:
            return super().dispatch(request, *args, **kwargs)
        except ValidationError as error:
            return JsonResponse({"error": "validation_error", "fields": error_fields(error)}, status=400)
        except NotFound as error:
            return JsonResponse({"error": "not_found", "detail": str(error)}, status=404)
        except ConflictError as error:
            return JsonResponse({"error": "conflict", "detail": str(error)}, status=409)

    def read_json(self):
        if not self.request.body:
            return {}
        try:
            payload = json.loads(self.request.body)
        except (UnicodeDecodeError, json.JSONDecodeError) as error:
            raise ValidationError("Request body must be valid JSON.") from error
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object.")
        return payload


class ComplaintCollectionView(JsonView):
    def get(self, request):
        queryset = store.list_complaints(request.GET)
        paginator = Paginator(queryset, settings.COMPLAINTS_PAGE_SIZE)
        page = paginator.get_page(request.GET.get("page"))
        latitude, longitude = parse_coordinates(request.GET)

        results = []
        for complaint in page.object_list:
            item = complaint_to_dict(complaint)
            if latitude is not None and complaint.has_coordinates:
                item["distance_km"] = calculate_distance(
                    latitude, longitude, complaint.latitude, complaint.longitude
                )
            results.append(item)

        return JsonResponse(
            {
                "count": paginator.count,
                "page": page.number,
                "num_pages": paginator.num_pages,
                "results": results,
            }
        )

    def post(self, request):
        user = request.user if request.user.is_authenticated else None
        complaint = store.create_complaint(self.read_json(), user=user)
        return JsonResponse(complaint_to_dict(complaint), status=201)


class ComplaintDetailView(JsonView):
    def get(self, request, complaint_id):
        complaint = store.get_complaint(complaint_id)
        return JsonResponse(complaint_to_dict(complaint, include_history=True))

    def patch(self, request, complaint_id):
        patch = self.read_json()
        version = patch.pop("version", None)
        expected_updated_at = None
        if version:
            try:
                expected_updated_at = parse_datetime(str(version))
            except ValueError:
                expected_updated_at = None
            if expected_updated_at is None:
                raise ValidationError({"version": "Enter a valid ISO 8601 timestamp."})
        if "status" in patch:
            raise ValidationError({"status": "Use the status endpoint to change the status."})
        complaint = store.update_complaint(complaint_id, patch, expected_updated_at=expected_updated_at)
        return JsonResponse(complaint_to_dict(complaint))


class ComplaintUpvoteView(JsonView):
    def post(self, request, complaint_id):
        complaint = store.increment_upvote(complaint_id)
        return JsonResponse(complaint_to_dict(complaint))


class ComplaintAssignView(JsonView):
    def post(self, request, complaint_id):
        payload = self.read_json()
        if "department_id" not in payload:
            raise ValidationError({"department_id": "This field is required."})
        actor_role = payload.get("actor_role") or ActorRole.ADMIN
        department_id = payload["department_id"]
        if department_id is None:
            complaint = unassign_complaint(complaint_id, actor_role=actor_role)
        else:
            complaint = assign_complaint(
                complaint_id,
                department_id,
                user_id=payload.get("user_id"),
                actor_role=actor_role,
            )
        return JsonResponse(complaint_to_dict(complaint, include_history=True))


class ComplaintStatusView(JsonView):
    def post(self, request, complaint_id):
        payload = self.read_json()
        if not payload.get("new_status"):
            raise ValidationError({"new_status": "This field is required."})
        complaint = transition_status(
            complaint_id,
            payload["new_status"],
            notes=payload.get("notes"),
            actor_role=payload.get("actor_role") or ActorRole.ADMIN,
        )
        return JsonResponse(complaint_to_dict(complaint, include_history=True))


class ComplaintHistoryView(JsonView):
    def get(self, request, complaint_id):
        complaint = store.get_complaint(complaint_id)
        entries = complaint.status_history.all()
        return JsonResponse({"results": [history_entry_to_dict(entry) for entry in entries]})


class ComplaintSuggestionView(JsonView):
    def get(self, request, complaint_id):
        complaint = store.get_complaint(complaint_id)
        department = suggest_department(complaint.category)
        return JsonResponse(
            {
                "category": complaint.category,
                "department": department_to_dict(department) if department else None,
            }
        )


class ComplaintPhotoUploadView(JsonView):
    def post(self, request, complaint_id):
        complaint = store.get_complaint(complaint_id)
        form = PhotoUploadForm(request.POST, request.FILES)
        if not form.is_valid():
            raise ValidationError(form.errors.as_data())
        photos = [
            ComplaintPhoto.objects.create(
                complaint=complaint,
                file=file_obj,
                original_filename=file_obj.name,
            )
            for file_obj in form.cleaned_data["photos"]
        ]
        logger.info("Stored %d photo(s) for complaint %s", len(photos), complaint.pk)
        return JsonResponse({"results": [photo_to_dict(photo) for photo in photos]}, status=201)


class PhotoDownloadView(View):
    def get(self, request, photo_id):
        photo = get_object_or_404(ComplaintPhoto, pk=photo_id)
        if not photo.file:
            raise Http404("File not found.")
        inline = request.GET.get("inline") == "1"
        return FileResponse(
            photo.file.open("rb"),
            as_attachment=not inline,
            filename=str(photo),
        )


class DepartmentListView(JsonView):
    def get(self, request):
        departments = registry.list_departments()
        return JsonResponse({"results": [department_to_dict(department) for department in departments]})


class DepartmentDetailView(JsonView):
    def get(self, request, department_id):
        department = registry.get_department(department_id)
        return JsonResponse(department_to_dict(department))


class DepartmentStatsView(JsonView):
    def get(self, request, department_id):
        department = registry.get_department(department_id)
        complaints = list(Complaint.objects.filter(assigned_department_id=department.pk))
        stats = metrics.department_stats(complaints, [department])[0]
        stats["overview"] = metrics.overview(complaints)
        stats["overdue_count"] = len(metrics.overdue(complaints, timezone.localdate()))
        return JsonResponse(stats)


class DepartmentQueueView(JsonView):
    def get(self, request, department_id):
        department = registry.get_department(department_id)
        params = request.GET.copy()
        params["department"] = department.pk
        complaints = metrics.department_queue(store.list_complaints(params))
        return JsonResponse({"results": [complaint_to_dict(complaint) for complaint in complaints]})


class OverviewMetricsView(JsonView):
    def get(self, request):
        return JsonResponse(metrics.overview(Complaint.objects.all()))


class CategoryMetricsView(JsonView):
    def get(self, request):
        return JsonResponse({"results": metrics.category_breakdown(Complaint.objects.all())})


class DepartmentMetricsView(JsonView):
    def get(self, request):
        stats = metrics.department_stats(Complaint.objects.all(), registry.list_departments())
        return JsonResponse({"results": stats})


class OverdueMetricsView(JsonView):
    def get(self, request):
        as_of = store.parse_date_param(request.GET, "as_of") or timezone.localdate()
        ids = metrics.overdue(Complaint.objects.all(), as_of)
        return JsonResponse({"as_of": as_of.isoformat(), "results": [str(pk) for pk in ids]})


class UnassignedMetricsView(JsonView):
    def get(self, request):
        complaints = metrics.unassigned_pending(Complaint.objects.all())
        return JsonResponse({"results": [complaint_to_dict(complaint) for complaint in complaints]})


class ReverseGeocodeView(JsonView):
    def get(self, request):
        latitude, longitude = parse_coordinates(request.GET)
        if latitude is None:
            raise ValidationError({"lat": "Both lat and lon are required."})
        return JsonResponse(
            {
                "latitude": latitude,
                "longitude": longitude,
                "address": resolve_address(latitude, longitude),
            }
        )
