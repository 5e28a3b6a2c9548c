"""Derived dashboard figures.

These functions never touch the database. They take an already-fetched
snapshot (any iterable of objects with the complaint attributes) so the
same input always yields the same output.
"""

from collections import Counter

from .models import Category, Priority, Status

PRIORITY_RANK = {Priority.HIGH: 3, Priority.MEDIUM: 2, Priority.LOW: 1}


def percentage(part: int, whole: int) -> int:
    """``round(part / whole * 100)`` rounding halves up; 0 when ``whole`` is 0."""
    if whole <= 0:
        return 0
    return (200 * part + whole) // (2 * whole)


def overview(complaints):
    complaints = list(complaints)
    statuses = Counter(complaint.status for complaint in complaints)
    total = len(complaints)
    resolved = statuses[Status.RESOLVED]
    return {
        "total": total,
        "pending": statuses[Status.PENDING],
        "in_progress": statuses[Status.IN_PROGRESS],
        "on_hold": statuses[Status.ON_HOLD],
        "resolved": resolved,
        "high_priority": sum(1 for complaint in complaints if complaint.priority == Priority.HIGH),
        "resolution_rate": percentage(resolved, total),
        "total_upvotes": sum(complaint.upvotes for complaint in complaints),
    }


def category_breakdown(complaints):
    complaints = list(complaints)
    total = len(complaints)
    counts = Counter(complaint.category for complaint in complaints)
    order = {category: index for index, category in enumerate(Category.values)}
    present = [category for category in Category.values if counts[category] > 0]
    present.sort(key=lambda category: (-counts[category], order[category]))
    return [
        {
            "category": category,
            "count": counts[category],
            "percent_of_total": percentage(counts[category], total),
        }
        for category in present
    ]


def department_stats(complaints, departments):
    assigned = Counter()
    resolved = Counter()
    for complaint in complaints:
        department_id = complaint.assigned_department_id
        if department_id is None:
            continue
        assigned[department_id] += 1
        if complaint.status == Status.RESOLVED:
            resolved[department_id] += 1

    return [
        {
            "department_id": department.pk,
            "name": department.name,
            "contact_email": department.contact_email,
            "assigned_count": assigned[department.pk],
            "resolved_count": resolved[department.pk],
            "success_rate": percentage(resolved[department.pk], assigned[department.pk]),
        }
        for department in departments
    ]


def overdue(complaints, as_of):
    return [
        complaint.pk
        for complaint in complaints
        if complaint.estimated_completion_date is not None
        and complaint.estimated_completion_date < as_of
        and complaint.status != Status.RESOLVED
    ]


def department_queue(complaints):
    # High priority first, then the longest-waiting.
    return sorted(
        complaints,
        key=lambda complaint: (-PRIORITY_RANK.get(complaint.priority, 0), complaint.created_at),
    )


def unassigned_pending(complaints):
    return [
        complaint
        for complaint in complaints
        if complaint.assigned_department_id is None and complaint.status == Status.PENDING
    ]
