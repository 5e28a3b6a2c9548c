from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from . import registry
from .models import Department


@receiver(post_save, sender=Department)
@receiver(post_delete, sender=Department)
def invalidate_department_cache(sender, **kwargs):
    registry.invalidate_cache()
