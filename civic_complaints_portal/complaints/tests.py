import json
import shutil
import tempfile
import threading
from datetime import date, datetime, timedelta, timezone as dt_timezone
from io import StringIO
from types import SimpleNamespace
from unittest import mock

import requests
from django.contrib.auth import get_user_model
from django.core import mail
from django.core.cache import cache
from django.core.exceptions import ValidationError
from django.core.files.uploadedfile import SimpleUploadedFile
from django.core.management import call_command
from django.db import DatabaseError, connection
from django.test import SimpleTestCase, TestCase, TransactionTestCase, override_settings
from django.urls import reverse
from django.utils import timezone

from . import metrics, registry, store
from .assignment import assign_complaint, suggest_department, unassign_complaint
from .exceptions import ConflictError, ImmutableRecordError, NotFound, UpstreamUnavailable
from .geo import calculate_distance, format_coordinates, resolve_address, reverse_geocode
from .lifecycle import transition_status
from .models import (
    ActorRole,
    Category,
    Complaint,
    ComplaintPhoto,
    Department,
    Priority,
    Status,
    StatusHistoryEntry,
)

User = get_user_model()


class ComplaintTestMixin:
    def setUp(self):
        cache.clear()
        self.roads = Department.objects.create(
            id="roads-dept",
            name="Roads & Infrastructure",
            description="Road maintenance",
            contact_email="roads@city.gov",
        )
        self.utilities = Department.objects.create(
            id="utilities-dept",
            name="Utilities",
            description="Water and power",
            contact_email="utilities@city.gov",
            contact_phone="+1-555-0102",
        )
        self.citizen = User.objects.create_user(
            username="citizen",
            email="citizen@example.com",
            password="StrongPass123!",
        )
        self.staff = User.objects.create_user(
            username="deptstaff",
            email="staff@example.com",
            password="StrongPass123!",
            is_staff=True,
        )

    def create_complaint(self, **kwargs):
        data = {
            "title": "Pothole on Main St",
            "description": "Large pothole",
            "category": Category.ROADS,
            "location": "Main St & 5th",
        }
        data.update(kwargs)
        return store.create_complaint(data)


@override_settings(EMAIL_BACKEND="django.core.mail.backends.locmem.EmailBackend")
class ComplaintStoreTests(ComplaintTestMixin, TestCase):
    def test_create_starts_pending_with_no_upvotes(self):
        complaint = self.create_complaint()
        self.assertEqual(complaint.status, Status.PENDING)
        self.assertEqual(complaint.priority, Priority.MEDIUM)
        self.assertEqual(complaint.upvotes, 0)
        self.assertIsNone(complaint.assigned_department_id)
        self.assertIsNone(complaint.actual_completion_date)

    def test_create_requires_title_description_category_and_location(self):
        with self.assertRaises(ValidationError) as ctx:
            store.create_complaint({"title": "  "})
        for field in ("title", "description", "category", "location"):
            self.assertIn(field, ctx.exception.message_dict)
        self.assertFalse(Complaint.objects.exists())

    def test_create_rejects_unknown_category(self):
        with self.assertRaises(ValidationError) as ctx:
            self.create_complaint(category="Weather")
        self.assertIn("category", ctx.exception.message_dict)

    def test_create_fills_location_from_coordinates(self):
        with mock.patch("complaints.geo.requests.get", side_effect=requests.ConnectionError("offline")):
            complaint = self.create_complaint(
                location="",
                latitude=39.78,
                longitude=-89.65,
            )
        self.assertEqual(complaint.location, format_coordinates(39.78, -89.65))

        resolved = store.create_complaint(
            {
                "title": "Broken hydrant",
                "description": "Leaking all day",
                "category": Category.WATER_SUPPLY,
                "latitude": 39.78,
                "longitude": -89.65,
            },
            resolver=lambda lat, lon: "Springfield, Illinois",
        )
        self.assertEqual(resolved.location, "Springfield, Illinois")

    def test_create_falls_back_to_coordinates_when_geocoder_fails(self):
        def failing_resolver(lat, lon):
            raise UpstreamUnavailable("timeout")

        complaint = store.create_complaint(
            {
                "title": "Flooded underpass",
                "description": "Water up to the knees",
                "category": Category.ROADS,
                "latitude": 12.3456789,
                "longitude": 98.7654321,
            },
            resolver=failing_resolver,
        )
        self.assertEqual(complaint.location, "12.345679, 98.765432")

    def test_create_rejects_half_coordinates(self):
        with self.assertRaises(ValidationError) as ctx:
            self.create_complaint(latitude=10.0)
        self.assertIn("longitude", ctx.exception.message_dict)

    def test_get_unknown_or_malformed_id_raises_not_found(self):
        with self.assertRaises(NotFound):
            store.get_complaint("00000000-0000-0000-0000-000000000000")
        with self.assertRaises(NotFound):
            store.get_complaint("not-a-uuid")

    def test_list_filters_and_search(self):
        pothole = self.create_complaint()
        leak = self.create_complaint(
            title="Water leak",
            description="Pipe burst near the POTHOLE repair",
            category=Category.WATER_SUPPLY,
            priority=Priority.HIGH,
        )
        park = self.create_complaint(title="Broken bench", description="Seat snapped", category=Category.PARKS)
        assign_complaint(leak.pk, self.utilities.pk)

        self.assertEqual(list(store.list_complaints({"category": Category.PARKS})), [park])
        self.assertEqual(list(store.list_complaints({"status": Status.IN_PROGRESS})), [leak])
        self.assertEqual(list(store.list_complaints({"priority": Priority.HIGH})), [leak])
        self.assertEqual(list(store.list_complaints({"department": self.utilities.pk})), [leak])
        self.assertCountEqual(store.list_complaints({"department": "unassigned"}), [pothole, park])
        self.assertCountEqual(store.list_complaints({"q": "pothole"}), [pothole, leak])
        self.assertEqual(store.list_complaints({}).count(), 3)

    def test_list_rejects_unknown_enum_and_bad_dates(self):
        with self.assertRaises(ValidationError):
            store.list_complaints({"status": "Closed"})
        with self.assertRaises(ValidationError):
            store.list_complaints({"start_date": "yesterday"})

    def test_update_patches_fields_and_refreshes_updated_at(self):
        complaint = self.create_complaint()
        before = complaint.updated_at
        updated = store.update_complaint(
            complaint.pk,
            {"priority": Priority.HIGH, "admin_notes": "Crew on standby", "estimated_completion_date": "2026-11-01"},
        )
        self.assertEqual(updated.priority, Priority.HIGH)
        self.assertEqual(updated.admin_notes, "Crew on standby")
        self.assertEqual(updated.estimated_completion_date, date(2026, 11, 1))
        self.assertGreaterEqual(updated.updated_at, before)

    def test_update_rejects_unknown_fields(self):
        complaint = self.create_complaint()
        with self.assertRaises(ValidationError) as ctx:
            store.update_complaint(complaint.pk, {"upvotes": 100})
        self.assertIn("upvotes", ctx.exception.message_dict)

    def test_update_cannot_change_status_or_completion_date(self):
        complaint = self.create_complaint()
        transition_status(complaint.pk, Status.RESOLVED)
        for patch in (
            {"status": Status.PENDING},
            {"actual_completion_date": None},
            {"status": Status.PENDING, "actual_completion_date": None},
        ):
            with self.assertRaises(ValidationError) as ctx:
                store.update_complaint(complaint.pk, patch)
            self.assertEqual(set(ctx.exception.message_dict), set(patch))

        complaint.refresh_from_db()
        self.assertEqual(complaint.status, Status.RESOLVED)
        self.assertEqual(complaint.actual_completion_date, timezone.localdate())
        self.assertEqual(complaint.status_history.count(), 1)

        reopened = transition_status(complaint.pk, Status.PENDING)
        self.assertIsNone(reopened.actual_completion_date)
        self.assertEqual(reopened.status_history.count(), 2)

    def test_update_cannot_stamp_completion_date_on_open_complaint(self):
        complaint = self.create_complaint()
        with self.assertRaises(ValidationError):
            store.update_complaint(complaint.pk, {"actual_completion_date": "2026-10-01"})
        complaint.refresh_from_db()
        self.assertIsNone(complaint.actual_completion_date)

    def test_update_unknown_id_raises_not_found(self):
        with self.assertRaises(NotFound):
            store.update_complaint("00000000-0000-0000-0000-000000000000", {"admin_notes": "x"})

    def test_update_with_stale_version_raises_conflict(self):
        complaint = self.create_complaint()
        stale = complaint.updated_at - timedelta(seconds=5)
        with self.assertRaises(ConflictError):
            store.update_complaint(complaint.pk, {"admin_notes": "late"}, expected_updated_at=stale)

        current = Complaint.objects.get(pk=complaint.pk).updated_at
        updated = store.update_complaint(complaint.pk, {"admin_notes": "on time"}, expected_updated_at=current)
        self.assertEqual(updated.admin_notes, "on time")

    def test_upvote_increments_from_stale_reads_without_losing_updates(self):
        complaint = self.create_complaint()
        stale_copies = [Complaint.objects.get(pk=complaint.pk) for _ in range(3)]
        for copy in stale_copies:
            self.assertEqual(copy.upvotes, 0)
            store.increment_upvote(copy.pk)
        complaint.refresh_from_db()
        self.assertEqual(complaint.upvotes, 3)

    def test_upvote_unknown_complaint_raises_not_found(self):
        with self.assertRaises(NotFound):
            store.increment_upvote("00000000-0000-0000-0000-000000000000")
        with self.assertRaises(NotFound):
            store.increment_upvote("garbage")

    def test_submission_email_sent_after_commit(self):
        with self.captureOnCommitCallbacks(execute=True):
            store.create_complaint(
                {
                    "title": "Streetlight out",
                    "description": "Dark corner at night",
                    "category": Category.UTILITIES,
                    "location": "Ward 7",
                },
                user=self.citizen,
            )
        self.assertEqual(len(mail.outbox), 1)
        self.assertIn("Complaint Submitted", mail.outbox[0].subject)


@override_settings(EMAIL_BACKEND="django.core.mail.backends.locmem.EmailBackend")
class ConcurrentUpvoteTests(TransactionTestCase):
    workers = 8

    def test_concurrent_upvotes_are_all_counted(self):
        if connection.vendor == "sqlite" and connection.is_in_memory_db():
            self.skipTest("Threads need a file-backed test database.")
        complaint = store.create_complaint(
            {
                "title": "Streetlight out",
                "description": "Dark corner at night",
                "category": Category.UTILITIES,
                "location": "Oak Ave",
            }
        )
        barrier = threading.Barrier(self.workers)
        errors = []

        def upvote():
            try:
                barrier.wait()
                store.increment_upvote(complaint.pk)
            except Exception as error:
                errors.append(error)
            finally:
                connection.close()

        threads = [threading.Thread(target=upvote) for _ in range(self.workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(errors, [])
        complaint.refresh_from_db()
        self.assertEqual(complaint.upvotes, self.workers)


@override_settings(EMAIL_BACKEND="django.core.mail.backends.locmem.EmailBackend")
class LifecycleTests(ComplaintTestMixin, TestCase):
    def test_resolving_stamps_today_and_reopening_clears(self):
        complaint = self.create_complaint()
        resolved = transition_status(complaint.pk, Status.RESOLVED, notes="Patched", actor_role=ActorRole.DEPARTMENT)
        self.assertEqual(resolved.status, Status.RESOLVED)
        self.assertEqual(resolved.actual_completion_date, timezone.localdate())

        reopened = transition_status(complaint.pk, Status.ON_HOLD)
        self.assertEqual(reopened.status, Status.ON_HOLD)
        self.assertIsNone(reopened.actual_completion_date)

        complaint.refresh_from_db()
        self.assertIsNone(complaint.actual_completion_date)

    def test_any_status_can_move_to_any_other(self):
        complaint = self.create_complaint()
        for new_status in (Status.RESOLVED, Status.PENDING, Status.ON_HOLD, Status.IN_PROGRESS, Status.PENDING):
            complaint = transition_status(complaint.pk, new_status)
            self.assertEqual(complaint.status, new_status)
        self.assertEqual(complaint.status_history.count(), 5)

    def test_noop_transition_is_accepted_and_logged(self):
        complaint = self.create_complaint()
        transition_status(complaint.pk, Status.PENDING)
        entry = complaint.status_history.get()
        self.assertEqual(entry.previous_status, Status.PENDING)
        self.assertEqual(entry.new_status, Status.PENDING)

    def test_notes_are_stored_on_the_actors_field(self):
        complaint = self.create_complaint()
        transition_status(complaint.pk, Status.IN_PROGRESS, notes="Escalated", actor_role=ActorRole.ADMIN)
        transition_status(complaint.pk, Status.RESOLVED, notes="Filled and sealed", actor_role=ActorRole.DEPARTMENT)
        complaint.refresh_from_db()
        self.assertEqual(complaint.admin_notes, "Escalated")
        self.assertEqual(complaint.resolution_notes, "Filled and sealed")
        roles = list(complaint.status_history.values_list("actor_role", flat=True))
        self.assertEqual(roles, [ActorRole.ADMIN, ActorRole.DEPARTMENT])

    def test_failed_history_append_rolls_back_status(self):
        complaint = self.create_complaint()
        with mock.patch(
            "complaints.lifecycle.record_history",
            side_effect=DatabaseError("ledger unavailable"),
        ):
            with self.assertLogs("complaints.lifecycle", level="ERROR"):
                with self.assertRaises(DatabaseError):
                    transition_status(complaint.pk, Status.RESOLVED)
        complaint.refresh_from_db()
        self.assertEqual(complaint.status, Status.PENDING)
        self.assertIsNone(complaint.actual_completion_date)
        self.assertFalse(StatusHistoryEntry.objects.exists())

    def test_invalid_status_and_role_rejected(self):
        complaint = self.create_complaint()
        with self.assertRaises(ValidationError):
            transition_status(complaint.pk, "Closed")
        with self.assertRaises(ValidationError):
            transition_status(complaint.pk, Status.RESOLVED, actor_role="mayor")
        self.assertEqual(complaint.status_history.count(), 0)

    def test_unknown_complaint_raises_not_found(self):
        with self.assertRaises(NotFound):
            transition_status("00000000-0000-0000-0000-000000000000", Status.RESOLVED)

    def test_status_change_emails_submitter(self):
        complaint = store.create_complaint(
            {
                "title": "Graffiti on wall",
                "description": "Offensive graffiti",
                "category": Category.OTHER,
                "location": "Library",
            },
            user=self.citizen,
        )
        with self.captureOnCommitCallbacks(execute=True):
            transition_status(complaint.pk, Status.IN_PROGRESS)
        with self.captureOnCommitCallbacks(execute=True):
            transition_status(complaint.pk, Status.IN_PROGRESS)
        self.assertEqual(len(mail.outbox), 1)
        self.assertIn("Pending to In Progress", mail.outbox[0].body)

    def test_history_entries_are_append_only(self):
        complaint = self.create_complaint()
        transition_status(complaint.pk, Status.IN_PROGRESS)
        entry = complaint.status_history.get()
        entry.notes = "rewritten"
        with self.assertRaises(ImmutableRecordError):
            entry.save()
        with self.assertRaises(ImmutableRecordError):
            entry.delete()
        self.assertEqual(StatusHistoryEntry.objects.get(pk=entry.pk).notes, "")


class AssignmentTests(ComplaintTestMixin, TestCase):
    def test_assign_forces_in_progress_and_logs_department(self):
        complaint = self.create_complaint()
        assigned = assign_complaint(complaint.pk, "roads-dept")
        self.assertEqual(assigned.status, Status.IN_PROGRESS)
        self.assertEqual(assigned.assigned_department_id, "roads-dept")
        entry = assigned.status_history.get()
        self.assertEqual(entry.new_status, Status.IN_PROGRESS)
        self.assertEqual(entry.notes, "Assigned to department: Roads & Infrastructure")

    def test_assign_from_any_status_forces_in_progress(self):
        for prior in (Status.ON_HOLD, Status.RESOLVED, Status.IN_PROGRESS):
            complaint = self.create_complaint(title=f"From {prior}")
            transition_status(complaint.pk, prior)
            assigned = assign_complaint(complaint.pk, self.utilities.pk)
            self.assertEqual(assigned.status, Status.IN_PROGRESS)
            self.assertIsNone(assigned.actual_completion_date)

    def test_assign_with_staff_member(self):
        complaint = self.create_complaint()
        assigned = assign_complaint(complaint.pk, self.roads.pk, user_id=self.staff.pk)
        self.assertEqual(assigned.assigned_to_user, self.staff)

    def test_reassign_without_user_clears_previous_staff_member(self):
        complaint = self.create_complaint()
        assign_complaint(complaint.pk, self.roads.pk, user_id=self.staff.pk)
        reassigned = assign_complaint(complaint.pk, self.utilities.pk)
        self.assertEqual(reassigned.assigned_department, self.utilities)
        self.assertIsNone(reassigned.assigned_to_user_id)
        reassigned.refresh_from_db()
        self.assertIsNone(reassigned.assigned_to_user_id)

    def test_assign_rejects_non_staff_and_unknown_users(self):
        complaint = self.create_complaint()
        with self.assertRaises(ValidationError):
            assign_complaint(complaint.pk, self.roads.pk, user_id=self.citizen.pk)
        with self.assertRaises(NotFound):
            assign_complaint(complaint.pk, self.roads.pk, user_id=999999)
        complaint.refresh_from_db()
        self.assertIsNone(complaint.assigned_department_id)

    def test_assign_unknown_complaint_or_department(self):
        complaint = self.create_complaint()
        with self.assertRaises(NotFound):
            assign_complaint(complaint.pk, "no-such-dept")
        with self.assertRaises(NotFound):
            assign_complaint("00000000-0000-0000-0000-000000000000", self.roads.pk)
        self.assertEqual(StatusHistoryEntry.objects.count(), 0)

    def test_unassign_keeps_status_and_logs_entry(self):
        complaint = self.create_complaint()
        assign_complaint(complaint.pk, self.roads.pk, user_id=self.staff.pk)
        transition_status(complaint.pk, Status.ON_HOLD)
        unassigned = unassign_complaint(complaint.pk)
        self.assertIsNone(unassigned.assigned_department_id)
        self.assertIsNone(unassigned.assigned_to_user_id)
        self.assertEqual(unassigned.status, Status.ON_HOLD)
        last = unassigned.status_history.last()
        self.assertEqual(last.new_status, Status.ON_HOLD)
        self.assertEqual(last.notes, "Unassigned from department: Roads & Infrastructure")

    def test_unassign_requires_an_assignment(self):
        complaint = self.create_complaint()
        with self.assertRaises(ValidationError):
            unassign_complaint(complaint.pk)

    def test_ledger_length_matches_number_of_mutating_calls(self):
        complaint = self.create_complaint()
        assign_complaint(complaint.pk, self.roads.pk)
        transition_status(complaint.pk, Status.ON_HOLD)
        assign_complaint(complaint.pk, self.utilities.pk)
        transition_status(complaint.pk, Status.RESOLVED)
        transition_status(complaint.pk, Status.RESOLVED)
        store.increment_upvote(complaint.pk)
        self.assertEqual(complaint.status_history.count(), 5)

    def test_category_suggestion_is_advisory(self):
        self.assertEqual(suggest_department(Category.ROADS), self.roads)
        self.assertEqual(suggest_department(Category.WATER_SUPPLY), self.utilities)
        self.assertIsNone(suggest_department(Category.PARKS))
        self.assertIsNone(suggest_department(Category.OTHER))

        complaint = self.create_complaint()
        assigned = assign_complaint(complaint.pk, self.utilities.pk)
        self.assertEqual(assigned.assigned_department, self.utilities)


class DepartmentRegistryTests(ComplaintTestMixin, TestCase):
    def test_list_is_cached_until_a_department_changes(self):
        self.assertEqual([d.pk for d in registry.list_departments()], ["roads-dept", "utilities-dept"])
        with self.assertNumQueries(0):
            registry.list_departments()

        Department.objects.create(id="parks-dept", name="Parks & Recreation", contact_email="parks@city.gov")
        names = [department.name for department in registry.list_departments()]
        self.assertIn("Parks & Recreation", names)
        self.assertEqual(suggest_department(Category.PARKS).pk, "parks-dept")

    def test_rename_invalidates_cache(self):
        registry.list_departments()
        self.roads.name = "Streets"
        self.roads.save()
        self.assertEqual(registry.get_department("roads-dept").name, "Streets")

    def test_get_unknown_department_raises_not_found(self):
        with self.assertRaises(NotFound):
            registry.get_department("nope")


def snapshot(**kwargs):
    values = {
        "pk": kwargs.pop("pk", None),
        "status": Status.PENDING,
        "priority": Priority.MEDIUM,
        "category": Category.OTHER,
        "upvotes": 0,
        "assigned_department_id": None,
        "estimated_completion_date": None,
        "created_at": datetime(2026, 1, 1, tzinfo=dt_timezone.utc),
    }
    values.update(kwargs)
    return SimpleNamespace(**values)


class MetricsTests(SimpleTestCase):
    def test_resolution_rate_is_zero_for_empty_input(self):
        summary = metrics.overview([])
        self.assertEqual(summary["total"], 0)
        self.assertEqual(summary["resolution_rate"], 0)

    def test_resolution_rate_rounds_half_up(self):
        for resolved, total, expected in [(1, 3, 33), (2, 3, 67), (1, 8, 13), (1, 2, 50), (3, 3, 100), (0, 5, 0)]:
            complaints = [snapshot(status=Status.RESOLVED) for _ in range(resolved)]
            complaints += [snapshot() for _ in range(total - resolved)]
            self.assertEqual(metrics.overview(complaints)["resolution_rate"], expected)

    def test_overview_counts(self):
        complaints = [
            snapshot(status=Status.PENDING, priority=Priority.HIGH, upvotes=4),
            snapshot(status=Status.IN_PROGRESS, upvotes=1),
            snapshot(status=Status.ON_HOLD, priority=Priority.HIGH),
            snapshot(status=Status.RESOLVED),
        ]
        self.assertEqual(
            metrics.overview(complaints),
            {
                "total": 4,
                "pending": 1,
                "in_progress": 1,
                "on_hold": 1,
                "resolved": 1,
                "high_priority": 2,
                "resolution_rate": 25,
                "total_upvotes": 5,
            },
        )

    def test_category_breakdown_orders_by_count_then_enum_order(self):
        complaints = [
            snapshot(category=Category.PARKS),
            snapshot(category=Category.SANITATION),
            snapshot(category=Category.PARKS),
            snapshot(category=Category.ROADS),
        ]
        breakdown = metrics.category_breakdown(complaints)
        self.assertEqual(
            breakdown,
            [
                {"category": Category.PARKS, "count": 2, "percent_of_total": 50},
                {"category": Category.ROADS, "count": 1, "percent_of_total": 25},
                {"category": Category.SANITATION, "count": 1, "percent_of_total": 25},
            ],
        )
        self.assertEqual(sum(item["count"] for item in breakdown), len(complaints))
        self.assertTrue(all(item["count"] > 0 for item in breakdown))
        self.assertEqual(metrics.category_breakdown([]), [])

    def test_department_stats(self):
        departments = [
            SimpleNamespace(pk="roads-dept", name="Roads & Infrastructure", contact_email="roads@city.gov"),
            SimpleNamespace(pk="idle-dept", name="Idle", contact_email="idle@city.gov"),
        ]
        complaints = [
            snapshot(assigned_department_id="roads-dept", status=Status.RESOLVED),
            snapshot(assigned_department_id="roads-dept", status=Status.IN_PROGRESS),
            snapshot(assigned_department_id="roads-dept", status=Status.RESOLVED),
            snapshot(),
        ]
        roads, idle = metrics.department_stats(complaints, departments)
        self.assertEqual((roads["assigned_count"], roads["resolved_count"], roads["success_rate"]), (3, 2, 67))
        self.assertEqual((idle["assigned_count"], idle["resolved_count"], idle["success_rate"]), (0, 0, 0))

    def test_overdue_skips_resolved_and_undated(self):
        as_of = date(2026, 10, 18)
        complaints = [
            snapshot(pk=1, estimated_completion_date=date(2026, 10, 17)),
            snapshot(pk=2, estimated_completion_date=date(2026, 10, 17), status=Status.RESOLVED),
            snapshot(pk=3, estimated_completion_date=date(2026, 10, 18)),
            snapshot(pk=4),
            snapshot(pk=5, estimated_completion_date=date(2026, 1, 1), status=Status.ON_HOLD),
        ]
        self.assertEqual(metrics.overdue(complaints, as_of), [1, 5])

    def test_aggregations_are_deterministic(self):
        complaints = [
            snapshot(pk=i, category=category, status=status, assigned_department_id="d")
            for i, (category, status) in enumerate(zip(Category.values, [Status.RESOLVED, Status.PENDING] * 4))
        ]
        departments = [SimpleNamespace(pk="d", name="D", contact_email="d@city.gov")]
        self.assertEqual(metrics.overview(complaints), metrics.overview(complaints))
        self.assertEqual(metrics.category_breakdown(complaints), metrics.category_breakdown(list(complaints)))
        self.assertEqual(
            metrics.department_stats(complaints, departments),
            metrics.department_stats(complaints, departments),
        )

    def test_department_queue_puts_high_priority_and_oldest_first(self):
        old_low = snapshot(pk="old-low", priority=Priority.LOW, created_at=datetime(2026, 1, 1, tzinfo=dt_timezone.utc))
        new_high = snapshot(pk="new-high", priority=Priority.HIGH, created_at=datetime(2026, 3, 1, tzinfo=dt_timezone.utc))
        old_high = snapshot(pk="old-high", priority=Priority.HIGH, created_at=datetime(2026, 2, 1, tzinfo=dt_timezone.utc))
        queue = metrics.department_queue([old_low, new_high, old_high])
        self.assertEqual([item.pk for item in queue], ["old-high", "new-high", "old-low"])

    def test_unassigned_pending(self):
        waiting = snapshot(pk="a")
        on_hold = snapshot(pk="b", status=Status.ON_HOLD)
        assigned = snapshot(pk="c", assigned_department_id="d", status=Status.PENDING)
        self.assertEqual(metrics.unassigned_pending([waiting, on_hold, assigned]), [waiting])


class GeoTests(SimpleTestCase):
    def test_distance_uses_haversine(self):
        self.assertEqual(calculate_distance(51.5, -0.12, 51.5, -0.12), 0)
        self.assertAlmostEqual(calculate_distance(0, 0, 0, 1), 111.195, places=2)
        self.assertAlmostEqual(
            calculate_distance(40.7128, -74.0060, 51.5074, -0.1278),
            calculate_distance(51.5074, -0.1278, 40.7128, -74.0060),
        )

    @mock.patch("complaints.geo.requests.get")
    def test_reverse_geocode_joins_address_parts(self, mock_get):
        mock_get.return_value.json.return_value = {
            "locality": "Springfield",
            "principalSubdivision": "Illinois",
            "countryName": "United States",
        }
        self.assertEqual(reverse_geocode(39.78, -89.65), "Springfield, Illinois, United States")

    @mock.patch("complaints.geo.requests.get")
    def test_reverse_geocode_with_empty_answer_returns_coordinates(self, mock_get):
        mock_get.return_value.json.return_value = {}
        self.assertEqual(reverse_geocode(1.5, 2.25), "1.500000, 2.250000")

    @mock.patch("complaints.geo.requests.get", side_effect=requests.ConnectionError("offline"))
    def test_provider_failure_falls_back_to_coordinate_string(self, mock_get):
        with self.assertRaises(UpstreamUnavailable):
            reverse_geocode(10.0, 20.0)
        with self.assertLogs("complaints.geo", level="WARNING"):
            self.assertEqual(resolve_address(10.0, 20.0), "10.000000, 20.000000")


@override_settings(EMAIL_BACKEND="django.core.mail.backends.locmem.EmailBackend")
class ComplaintApiTests(ComplaintTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.media_root = tempfile.mkdtemp()
        self.media_override = override_settings(MEDIA_ROOT=self.media_root)
        self.media_override.enable()

    def tearDown(self):
        self.media_override.disable()
        shutil.rmtree(self.media_root, ignore_errors=True)

    def post_json(self, url, payload):
        return self.client.post(url, data=json.dumps(payload), content_type="application/json")

    def test_pothole_scenario(self):
        response = self.post_json(
            reverse("complaints:complaint_list"),
            {
                "title": "Pothole on Main St",
                "description": "Large pothole",
                "category": "Roads",
                "location": "Main St & 5th",
            },
        )
        self.assertEqual(response.status_code, 201)
        created = response.json()
        self.assertEqual(created["status"], "Pending")
        self.assertEqual(created["upvotes"], 0)
        complaint_id = created["id"]

        response = self.post_json(
            reverse("complaints:complaint_assign", kwargs={"complaint_id": complaint_id}),
            {"department_id": "roads-dept"},
        )
        self.assertEqual(response.status_code, 200)
        assigned = response.json()
        self.assertEqual(assigned["status"], "In Progress")
        self.assertEqual(assigned["assigned_department_id"], "roads-dept")
        self.assertEqual(len(assigned["history"]), 1)

        response = self.post_json(
            reverse("complaints:complaint_status", kwargs={"complaint_id": complaint_id}),
            {"new_status": "Resolved", "actor_role": "department", "notes": "Filled"},
        )
        self.assertEqual(response.status_code, 200)
        resolved = response.json()
        self.assertEqual(resolved["actual_completion_date"], timezone.localdate().isoformat())
        self.assertEqual(resolved["resolution_notes"], "Filled")
        self.assertEqual(len(resolved["history"]), 2)

        upvote_url = reverse("complaints:complaint_upvote", kwargs={"complaint_id": complaint_id})
        for _ in range(3):
            self.assertEqual(self.client.post(upvote_url).status_code, 200)
        detail = self.client.get(reverse("complaints:complaint_detail", kwargs={"complaint_id": complaint_id}))
        self.assertEqual(detail.json()["upvotes"], 3)

    def test_create_with_missing_fields_returns_field_errors(self):
        response = self.post_json(reverse("complaints:complaint_list"), {"title": "Only a title"})
        self.assertEqual(response.status_code, 400)
        body = response.json()
        self.assertEqual(body["error"], "validation_error")
        self.assertIn("description", body["fields"])
        self.assertIn("location", body["fields"])

    def test_malformed_json_is_a_validation_error(self):
        response = self.client.post(
            reverse("complaints:complaint_list"),
            data="{not json",
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 400)

    def test_unknown_ids_return_404(self):
        missing = "00000000-0000-0000-0000-000000000000"
        self.assertEqual(
            self.client.get(reverse("complaints:complaint_detail", kwargs={"complaint_id": missing})).status_code,
            404,
        )
        self.assertEqual(
            self.client.post(reverse("complaints:complaint_upvote", kwargs={"complaint_id": "junk"})).status_code,
            404,
        )
        complaint = self.create_complaint()
        response = self.post_json(
            reverse("complaints:complaint_assign", kwargs={"complaint_id": complaint.pk}),
            {"department_id": "ghost-dept"},
        )
        self.assertEqual(response.status_code, 404)
        self.assertEqual(
            self.client.get(reverse("complaints:department_stats", kwargs={"department_id": "ghost-dept"})).status_code,
            404,
        )

    def test_assign_with_null_department_unassigns(self):
        complaint = self.create_complaint()
        assign_complaint(complaint.pk, self.roads.pk)
        response = self.post_json(
            reverse("complaints:complaint_assign", kwargs={"complaint_id": complaint.pk}),
            {"department_id": None},
        )
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertIsNone(body["assigned_department_id"])
        self.assertEqual(body["status"], "In Progress")
        self.assertEqual(len(body["history"]), 2)

    def test_patch_with_stale_version_returns_conflict(self):
        complaint = self.create_complaint()
        url = reverse("complaints:complaint_detail", kwargs={"complaint_id": complaint.pk})
        version = self.client.get(url).json()["version"]

        response = self.client.patch(
            url,
            data=json.dumps({"admin_notes": "First", "version": version}),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 200)

        response = self.client.patch(
            url,
            data=json.dumps({"admin_notes": "Second", "version": version}),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 409)
        complaint.refresh_from_db()
        self.assertEqual(complaint.admin_notes, "First")

    def test_patch_cannot_change_status(self):
        complaint = self.create_complaint()
        response = self.client.patch(
            reverse("complaints:complaint_detail", kwargs={"complaint_id": complaint.pk}),
            data=json.dumps({"status": "Resolved"}),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("status", response.json()["fields"])

    def test_list_filters_paginates_and_adds_distance(self):
        for index in range(12):
            self.create_complaint(
                title=f"Complaint {index}",
                category=Category.SANITATION,
                latitude=10.0,
                longitude=10.0 + index / 100,
            )
        self.create_complaint(title="Other thing", category=Category.OTHER)
        response = self.client.get(
            reverse("complaints:complaint_list"),
            data={"category": "Sanitation", "lat": "10.0", "lon": "10.0"},
        )
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["count"], 12)
        self.assertEqual(body["num_pages"], 2)
        self.assertEqual(len(body["results"]), 10)
        for item in body["results"]:
            self.assertEqual(item["category"], "Sanitation")
            self.assertIn("distance_km", item)

        response = self.client.get(reverse("complaints:complaint_list"), data={"status": "Closed"})
        self.assertEqual(response.status_code, 400)

    def test_metrics_endpoints(self):
        first = self.create_complaint(priority=Priority.HIGH)
        self.create_complaint(title="Leak", category=Category.WATER_SUPPLY)
        assign_complaint(first.pk, self.roads.pk)
        transition_status(first.pk, Status.RESOLVED)

        overview = self.client.get(reverse("complaints:metrics_overview")).json()
        self.assertEqual(overview["total"], 2)
        self.assertEqual(overview["resolved"], 1)
        self.assertEqual(overview["resolution_rate"], 50)
        self.assertEqual(overview["high_priority"], 1)

        categories = self.client.get(reverse("complaints:metrics_categories")).json()["results"]
        self.assertEqual([item["category"] for item in categories], ["Roads", "Water Supply"])

        departments = self.client.get(reverse("complaints:metrics_departments")).json()["results"]
        by_id = {item["department_id"]: item for item in departments}
        self.assertEqual(by_id["roads-dept"]["success_rate"], 100)
        self.assertEqual(by_id["utilities-dept"]["success_rate"], 0)

        unassigned = self.client.get(reverse("complaints:metrics_unassigned")).json()["results"]
        self.assertEqual([item["title"] for item in unassigned], ["Leak"])

    def test_department_stats_for_idle_department(self):
        response = self.client.get(reverse("complaints:department_stats", kwargs={"department_id": "utilities-dept"}))
        self.assertEqual(response.status_code, 200)
        stats = response.json()
        self.assertEqual(stats["assigned_count"], 0)
        self.assertEqual(stats["success_rate"], 0)
        self.assertEqual(stats["overview"]["total"], 0)
        self.assertEqual(stats["overdue_count"], 0)

    def test_department_queue_and_overdue(self):
        low = self.create_complaint(title="Faded markings", priority=Priority.LOW)
        high = self.create_complaint(title="Collapsed drain", priority=Priority.HIGH)
        for complaint in (low, high):
            assign_complaint(complaint.pk, self.roads.pk)
        store.update_complaint(low.pk, {"estimated_completion_date": date(2026, 1, 1)})

        queue = self.client.get(reverse("complaints:department_queue", kwargs={"department_id": "roads-dept"}))
        self.assertEqual([item["title"] for item in queue.json()["results"]], ["Collapsed drain", "Faded markings"])

        overdue = self.client.get(reverse("complaints:metrics_overdue"), data={"as_of": "2026-02-01"}).json()
        self.assertEqual(overdue["results"], [str(low.pk)])
        bad = self.client.get(reverse("complaints:metrics_overdue"), data={"as_of": "soon"})
        self.assertEqual(bad.status_code, 400)

    def test_departments_and_suggestion(self):
        departments = self.client.get(reverse("complaints:department_list")).json()["results"]
        self.assertEqual([item["id"] for item in departments], ["roads-dept", "utilities-dept"])

        complaint = self.create_complaint()
        suggestion = self.client.get(
            reverse("complaints:complaint_suggestion", kwargs={"complaint_id": complaint.pk})
        ).json()
        self.assertEqual(suggestion["department"]["id"], "roads-dept")

    def test_history_endpoint(self):
        complaint = self.create_complaint()
        assign_complaint(complaint.pk, self.roads.pk)
        transition_status(complaint.pk, Status.ON_HOLD, notes="Waiting for asphalt")
        response = self.client.get(reverse("complaints:complaint_history", kwargs={"complaint_id": complaint.pk}))
        entries = response.json()["results"]
        self.assertEqual([entry["new_status"] for entry in entries], ["In Progress", "On Hold"])
        self.assertEqual(entries[1]["notes"], "Waiting for asphalt")

    def test_photo_upload_and_download(self):
        complaint = self.create_complaint()
        url = reverse("complaints:complaint_photos", kwargs={"complaint_id": complaint.pk})
        upload = SimpleUploadedFile("pothole.png", b"\x89PNG\r\n\x1a\n fake", content_type="image/png")
        response = self.client.post(url, data={"photos": [upload]})
        self.assertEqual(response.status_code, 201)
        photo = ComplaintPhoto.objects.get(complaint=complaint)
        self.assertEqual(photo.original_filename, "pothole.png")

        download = self.client.get(reverse("complaints:photo_download", kwargs={"photo_id": photo.pk}))
        self.assertEqual(download.status_code, 200)

    def test_invalid_photo_extension_rejected(self):
        complaint = self.create_complaint()
        url = reverse("complaints:complaint_photos", kwargs={"complaint_id": complaint.pk})
        upload = SimpleUploadedFile("malware.exe", b"test", content_type="application/octet-stream")
        response = self.client.post(url, data={"photos": [upload]})
        self.assertEqual(response.status_code, 400)
        self.assertIn("Only JPG, JPEG, and PNG photos are allowed.", response.json()["fields"]["photos"])
        self.assertFalse(ComplaintPhoto.objects.exists())

    @mock.patch("complaints.geo.requests.get", side_effect=requests.Timeout("slow"))
    def test_reverse_geocode_endpoint_falls_back(self, mock_get):
        response = self.client.get(reverse("complaints:reverse_geocode"), data={"lat": "12.5", "lon": "-3.25"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["address"], "12.500000, -3.250000")
        self.assertEqual(self.client.get(reverse("complaints:reverse_geocode")).status_code, 400)


class AdminAndSeedTests(ComplaintTestMixin, TestCase):
    def test_admin_action_routes_through_lifecycle(self):
        User.objects.create_superuser(username="admin", email="admin@example.com", password="AdminPass123!")
        self.client.login(username="admin", password="AdminPass123!")
        complaint = self.create_complaint()
        response = self.client.post(
            reverse("admin:complaints_complaint_changelist"),
            data={"action": "mark_resolved", "_selected_action": [str(complaint.pk)]},
        )
        self.assertEqual(response.status_code, 302)
        complaint.refresh_from_db()
        self.assertEqual(complaint.status, Status.RESOLVED)
        self.assertEqual(complaint.actual_completion_date, timezone.localdate())
        self.assertEqual(complaint.status_history.get().actor_role, ActorRole.ADMIN)

    def test_seed_data_is_idempotent(self):
        out = StringIO()
        call_command("seed_data", stdout=out)
        self.assertIn("Seed complete.", out.getvalue())
        self.assertEqual(Department.objects.count(), 6)
        pothole = Complaint.objects.get(title="Pothole on Main St")
        self.assertEqual(pothole.assigned_department_id, "roads-dept")
        self.assertEqual(pothole.status, Status.IN_PROGRESS)
        bins = Complaint.objects.get(title="Overflowing garbage bins")
        self.assertEqual(bins.status, Status.RESOLVED)
        self.assertEqual(bins.status_history.count(), 2)

        call_command("seed_data", stdout=StringIO())
        self.assertEqual(Complaint.objects.filter(title="Pothole on Main St").count(), 1)
