def _isoformat(value):
    return value.isoformat() if value is not None else None


def department_to_dict(department):
    return {
        "id": department.pk,
        "name": department.name,
        "description": department.description,
        "contact_email": department.contact_email,
        "contact_phone": department.contact_phone,
    }


def history_entry_to_dict(entry):
    return {
        "id": entry.pk,
        "complaint_id": str(entry.complaint_id),
        "previous_status": entry.previous_status or None,
        "new_status": entry.new_status,
        "notes": entry.notes,
        "actor_role": entry.actor_role,
        "timestamp": _isoformat(entry.created_at),
    }


def photo_to_dict(photo):
    return {
        "id": photo.pk,
        "filename": str(photo),
        "uploaded_at": _isoformat(photo.uploaded_at),
    }


def complaint_to_dict(complaint, include_history=False):
    data = {
        "id": str(complaint.pk),
        "title": complaint.title,
        "description": complaint.description,
        "category": complaint.category,
        "priority": complaint.priority,
        "status": complaint.status,
        "location": complaint.location,
        "latitude": complaint.latitude,
        "longitude": complaint.longitude,
        "upvotes": complaint.upvotes,
        "assigned_department_id": complaint.assigned_department_id,
        "assigned_to_user_id": complaint.assigned_to_user_id,
        "admin_notes": complaint.admin_notes,
        "resolution_notes": complaint.resolution_notes,
        "estimated_completion_date": _isoformat(complaint.estimated_completion_date),
        "actual_completion_date": _isoformat(complaint.actual_completion_date),
        "date_submitted": _isoformat(complaint.date_submitted),
        "created_at": _isoformat(complaint.created_at),
        "updated_at": _isoformat(complaint.updated_at),
        "version": _isoformat(complaint.updated_at),
    }
    if include_history:
        data["history"] = [history_entry_to_dict(entry) for entry in complaint.status_history.all()]
        data["photos"] = [photo_to_dict(photo) for photo in complaint.photos.all()]
    return data
