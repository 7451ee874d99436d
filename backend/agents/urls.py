from __future__ import annotations

from django.urls import path

from agents import views

urlpatterns = [
    path("agents/", views.AgentListCreateView.as_view(), name="agent-list-create"),
    path("agents/<int:agent_pk>/", views.AgentDetailView.as_view(), name="agent-detail"),
    path("jobs/", views.JobListCreateView.as_view(), name="job-list-create"),
    path("jobs/<int:job_id>/", views.JobDetailView.as_view(), name="job-detail"),
    path("jobs/<int:job_id>/cancel/", views.JobCancelView.as_view(), name="job-cancel"),
]
