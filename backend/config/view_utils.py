from __future__ import annotations

from django.db.models import QuerySet

from config.domain_exceptions import NotFoundError


class ObjectPermissionMixin:
    """
    Fetch a single object from an already-scoped queryset and run DRF object permissions.

    Rows outside the caller's scope surface as 404, never 403, so their existence is not leaked.
    """

    not_found_message = "Not found."

    def get_object_or_404(self, *, request, queryset: QuerySet, **lookup):
        obj = queryset.filter(**lookup).first()
        if obj is None:
            raise NotFoundError(self.not_found_message)
        self.check_object_permissions(request, obj)
        return obj
