from django.conf import settings
from django.core.mail import send_mail


def _recipient(complaint):
    if complaint.user_id is None or not complaint.user.email:
        return None
    return complaint.user


def send_submission_email(complaint):
    user = _recipient(complaint)
    if user is None:
        return
    send_mail(
        subject=f"Complaint Submitted: {complaint.title}",
        message=(
            f"Dear {user.username},\n\n"
            f"Your complaint has been submitted successfully.\n"
            f"Reference: {complaint.pk}\n"
            f"Category: {complaint.category}\n"
            f"Status: {complaint.status}\n\n"
            "We will notify you when there is an update."
        ),
        from_email=settings.DEFAULT_FROM_EMAIL,
        recipient_list=[user.email],
        fail_silently=True,
    )


def send_status_change_email(complaint, old_status, new_status):
    user = _recipient(complaint)
    if user is None:
        return
    send_mail(
        subject=f"Complaint Status Updated: {complaint.title}",
        message=(
            f"Dear {user.username},\n\n"
            f"Your complaint {complaint.pk} status changed from "
            f"{old_status} to {new_status}.\n\n"
            "Thank you."
        ),
        from_email=settings.DEFAULT_FROM_EMAIL,
        recipient_list=[user.email],
        fail_silently=True,
    )
