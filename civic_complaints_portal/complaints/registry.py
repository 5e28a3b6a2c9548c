import logging

from django.conf import settings
from django.core.cache import cache

from .exceptions import NotFound
from .models import Department

logger = logging.getLogger(__name__)

DEPARTMENTS_CACHE_KEY = "complaints:departments"


def list_departments():
    departments = cache.get(DEPARTMENTS_CACHE_KEY)
    if departments is None:
        departments = list(Department.objects.order_by("name"))
        cache.set(DEPARTMENTS_CACHE_KEY, departments, settings.DEPARTMENT_CACHE_TIMEOUT)
    return departments


def get_department(department_id, use_cache=True):
    if use_cache:
        for department in list_departments():
            if department.pk == department_id:
                return department
    # A department created since the last refresh is not in the cache yet.
    try:
        return Department.objects.get(pk=department_id)
    except Department.DoesNotExist as error:
        raise NotFound("Department", department_id) from error


def find_department_by_name(name):
    for department in list_departments():
        if department.name == name:
            return department
    return None


def invalidate_cache():
    logger.debug("Invalidating department registry cache")
    cache.delete(DEPARTMENTS_CACHE_KEY)
