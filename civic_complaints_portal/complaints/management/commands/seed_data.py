from datetime import timedelta

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.utils import timezone

from complaints.assignment import assign_complaint
from complaints.lifecycle import transition_status
from complaints.models import ActorRole, Category, Complaint, Department, Priority, Status

User = get_user_model()

DEPARTMENTS = [
    {
        "id": "roads-dept",
        "name": "Roads & Infrastructure",
        "description": "Road surfaces, bridges, footpaths and street lighting.",
        "contact_email": "roads@city.gov",
        "contact_phone": "+1-555-0101",
    },
    {
        "id": "utilities-dept",
        "name": "Utilities",
        "description": "Electricity, water supply and drainage networks.",
        "contact_email": "utilities@city.gov",
        "contact_phone": "+1-555-0102",
    },
    {
        "id": "sanitation-dept",
        "name": "Sanitation",
        "description": "Waste collection, street cleaning and public toilets.",
        "contact_email": "sanitation@city.gov",
        "contact_phone": None,
    },
    {
        "id": "public-safety-dept",
        "name": "Public Safety",
        "description": "Hazards, abandoned vehicles and emergency follow-ups.",
        "contact_email": "safety@city.gov",
        "contact_phone": "+1-555-0104",
    },
    {
        "id": "transport-dept",
        "name": "Public Transport",
        "description": "Bus stops, routes and transit facilities.",
        "contact_email": "transport@city.gov",
        "contact_phone": None,
    },
    {
        "id": "parks-dept",
        "name": "Parks & Recreation",
        "description": "Parks, playgrounds and public green spaces.",
        "contact_email": "parks@city.gov",
        "contact_phone": "+1-555-0106",
    },
]

SAMPLE_COMPLAINTS = [
    {
        "title": "Pothole on Main St",
        "description": "Large pothole causing traffic to swerve into the next lane.",
        "category": Category.ROADS,
        "priority": Priority.HIGH,
        "location": "Main St & 5th",
        "latitude": 40.712776,
        "longitude": -74.005974,
        "department": "roads-dept",
        "status": Status.IN_PROGRESS,
    },
    {
        "title": "Overflowing garbage bins",
        "description": "Bins near the market have not been cleared for a week.",
        "category": Category.SANITATION,
        "priority": Priority.MEDIUM,
        "location": "Central Market, Zone 2",
        "department": "sanitation-dept",
        "status": Status.RESOLVED,
    },
    {
        "title": "Low water pressure",
        "description": "Taps on the whole street barely run in the mornings.",
        "category": Category.WATER_SUPPLY,
        "priority": Priority.MEDIUM,
        "location": "Elm Street",
        "department": "utilities-dept",
        "status": Status.ON_HOLD,
    },
    {
        "title": "Broken swing in playground",
        "description": "The chain on one swing is snapped and hanging loose.",
        "category": Category.PARKS,
        "priority": Priority.LOW,
        "location": "Riverside Park",
        "department": None,
        "status": Status.PENDING,
    },
]


class Command(BaseCommand):
    help = "Seed the database with departments and sample complaints."

    def handle(self, *args, **options):
        for definition in DEPARTMENTS:
            Department.objects.update_or_create(id=definition["id"], defaults=definition)

        staff_user, created_staff = User.objects.get_or_create(
            username="dept_staff",
            defaults={"email": "dept_staff@example.com", "is_staff": True},
        )
        if created_staff:
            staff_user.set_password("StaffPass123!")
            staff_user.save()

        created_count = 0
        for item in SAMPLE_COMPLAINTS:
            item = dict(item)
            department_id = item.pop("department")
            target_status = item.pop("status")
            complaint, created = Complaint.objects.get_or_create(title=item["title"], defaults=item)
            if not created:
                continue
            created_count += 1
            if department_id:
                assign_complaint(complaint.pk, department_id, user_id=staff_user.pk, actor_role=ActorRole.SYSTEM)
            if target_status not in (Status.PENDING, Status.IN_PROGRESS):
                transition_status(
                    complaint.pk,
                    target_status,
                    notes="Auto-seeded complaint for demo use.",
                    actor_role=ActorRole.DEPARTMENT,
                )
            if target_status == Status.IN_PROGRESS:
                Complaint.objects.filter(pk=complaint.pk).update(
                    estimated_completion_date=timezone.localdate() - timedelta(days=2)
                )

        self.stdout.write(self.style.SUCCESS("Seed complete."))
        self.stdout.write(self.style.WARNING("Staff credentials: dept_staff / StaffPass123!"))
        self.stdout.write(self.style.SUCCESS(f"Departments: {Department.objects.count()}"))
        self.stdout.write(self.style.SUCCESS(f"New complaints created: {created_count}"))
