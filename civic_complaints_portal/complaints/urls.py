from django.urls import path

from .views import (
    CategoryMetricsView,
    ComplaintAssignView,
    ComplaintCollectionView,
    ComplaintDetailView,
    ComplaintHistoryView,
    ComplaintPhotoUploadView,
    ComplaintStatusView,
    ComplaintSuggestionView,
    ComplaintUpvoteView,
    DepartmentDetailView,
    DepartmentListView,
    DepartmentMetricsView,
    DepartmentQueueView,
    DepartmentStatsView,
    OverdueMetricsView,
    OverviewMetricsView,
    PhotoDownloadView,
    ReverseGeocodeView,
    UnassignedMetricsView,
)

app_name = "complaints"

urlpatterns = [
    path("complaints/", ComplaintCollectionView.as_view(), name="complaint_list"),
    path("complaints/<str:complaint_id>/", ComplaintDetailView.as_view(), name="complaint_detail"),
    path("complaints/<str:complaint_id>/upvote/", ComplaintUpvoteView.as_view(), name="complaint_upvote"),
    path("complaints/<str:complaint_id>/assign/", ComplaintAssignView.as_view(), name="complaint_assign"),
    path("complaints/<str:complaint_id>/status/", ComplaintStatusView.as_view(), name="complaint_status"),
    path("complaints/<str:complaint_id>/history/", ComplaintHistoryView.as_view(), name="complaint_history"),
    path(
        "complaints/<str:complaint_id>/suggestion/",
        ComplaintSuggestionView.as_view(),
        name="complaint_suggestion",
    ),
    path("complaints/<str:complaint_id>/photos/", ComplaintPhotoUploadView.as_view(), name="complaint_photos"),
    path("photos/<int:photo_id>/download/", PhotoDownloadView.as_view(), name="photo_download"),
    path("departments/", DepartmentListView.as_view(), name="department_list"),
    path("departments/<slug:department_id>/", DepartmentDetailView.as_view(), name="department_detail"),
    path("departments/<slug:department_id>/stats/", DepartmentStatsView.as_view(), name="department_stats"),
    path(
        "departments/<slug:department_id>/complaints/",
        DepartmentQueueView.as_view(),
        name="department_queue",
    ),
    path("metrics/overview/", OverviewMetricsView.as_view(), name="metrics_overview"),
    path("metrics/categories/", CategoryMetricsView.as_view(), name="metrics_categories"),
    path("metrics/departments/", DepartmentMetricsView.as_view(), name="metrics_departments"),
    path("metrics/overdue/", OverdueMetricsView.as_view(), name="metrics_overdue"),
    path("metrics/unassigned/", UnassignedMetricsView.as_view(), name="metrics_unassigned"),
    path("geo/reverse/", ReverseGeocodeView.as_view(), name="reverse_geocode"),
]
