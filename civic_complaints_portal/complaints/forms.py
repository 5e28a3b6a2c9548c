from pathlib import Path

from django import forms
from django.core.exceptions import ValidationError

from .geo import resolve_address
from .models import Complaint, Priority

ALLOWED_PHOTO_EXTENSIONS = {".jpg", ".jpeg", ".png"}
MAX_PHOTO_SIZE_BYTES = 5 * 1024 * 1024


def validate_photo(file_obj):
    extension = Path(file_obj.name).suffix.lower()
    if extension not in ALLOWED_PHOTO_EXTENSIONS:
        raise ValidationError("Only JPG, JPEG, and PNG photos are allowed.")
    if file_obj.size > MAX_PHOTO_SIZE_BYTES:
        raise ValidationError("Each photo must be 5MB or smaller.")


class MultipleFileInput(forms.ClearableFileInput):
    allow_multiple_selected = True


class MultipleFileField(forms.FileField):
    widget = MultipleFileInput

    def clean(self, data, initial=None):
        if not data:
            return []
        if not isinstance(data, (list, tuple)):
            data = [data]
        cleaned_files = []
        errors = []
        for file_obj in data:
            try:
                cleaned_files.append(super().clean(file_obj, initial))
            except ValidationError as error:
                errors.extend(error.error_list)
        if errors:
            raise ValidationError(errors)
        return cleaned_files


class ComplaintForm(forms.ModelForm):
    """Citizen submission.

    ``location`` may be left blank when coordinates are supplied; it is then
    filled in from the reverse-geocoding resolver.
    """

    class Meta:
        model = Complaint
        fields = ["title", "description", "category", "priority", "location", "latitude", "longitude"]

    def __init__(self, *args, **kwargs):
        self.resolver = kwargs.pop("resolver", None)
        super().__init__(*args, **kwargs)
        self.fields["priority"].required = False
        self.fields["location"].required = False

    def clean_priority(self):
        return self.cleaned_data.get("priority") or Priority.MEDIUM

    def clean(self):
        cleaned_data = super().clean()
        location = (cleaned_data.get("location") or "").strip()
        latitude = cleaned_data.get("latitude")
        longitude = cleaned_data.get("longitude")
        if not location:
            if latitude is not None and longitude is not None:
                cleaned_data["location"] = resolve_address(latitude, longitude, resolver=self.resolver)
            elif "location" not in self.errors:
                self.add_error("location", "This field is required.")
        return cleaned_data


class PhotoUploadForm(forms.Form):
    photos = MultipleFileField(required=False)

    def clean_photos(self):
        files = self.cleaned_data.get("photos", [])
        if not files:
            raise ValidationError("Select at least one photo.")
        for file_obj in files:
            validate_photo(file_obj)
        return files
