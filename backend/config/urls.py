from __future__ import annotations

from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/triggers/", include("scheduler.urls")),
    path("api/agent/", include("agents.urls_agent")),
    path("api/", include("agents.urls")),
]
