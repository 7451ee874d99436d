from __future__ import annotations

from django.db.models import QuerySet
from rest_framework.permissions import BasePermission

from catalog.models import Project


def is_staff(user) -> bool:
    return bool(user and user.is_authenticated and user.is_staff)


def visible_projects(user) -> QuerySet[Project]:
    """Projects the user may act on (all of them for staff)."""
    if is_staff(user):
        return Project.objects.all()
    if not user or not user.is_authenticated:
        return Project.objects.none()
    return Project.objects.filter(members=user)


def scope_to_user_projects(queryset: QuerySet, user, *, field: str = "project") -> QuerySet:
    if is_staff(user):
        return queryset
    return queryset.filter(**{f"{field}__in": visible_projects(user)})


class IsProjectMember(BasePermission):
    message = "Forbidden."

    def has_object_permission(self, request, view, obj) -> bool:
        """Allow access for staff or members of the object's project."""
        if is_staff(request.user):
            return True
        project_id = getattr(obj, "project_id", None)
        if project_id is None:
            return False
        return visible_projects(request.user).filter(id=project_id).exists()
