from __future__ import annotations

from django.urls import path

from . import views

urlpatterns = [
    path("", views.TriggerListCreateView.as_view(), name="trigger-list-create"),
    path("dispatch/", views.TriggerDispatchView.as_view(), name="trigger-dispatch"),
    path("<int:trigger_id>/", views.TriggerDetailView.as_view(), name="trigger-detail"),
    path("<int:trigger_id>/executions/", views.TriggerExecutionsView.as_view(), name="trigger-executions"),
    path("<int:trigger_id>/fire/", views.TriggerFireView.as_view(), name="trigger-fire"),
    path("<int:trigger_id>/events/", views.TriggerEventView.as_view(), name="trigger-events"),
]
