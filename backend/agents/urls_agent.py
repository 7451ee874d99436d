from __future__ import annotations

from django.urls import path

from agents import agent_views

urlpatterns = [
    path("register/", agent_views.AgentRegisterView.as_view(), name="agent-register"),
    path("heartbeat/", agent_views.AgentHeartbeatView.as_view(), name="agent-heartbeat"),
    path("jobs/poll/", agent_views.AgentJobPollView.as_view(), name="agent-job-poll"),
    path("jobs/<int:job_id>/", agent_views.AgentJobDetailView.as_view(), name="agent-job-detail"),
    path("jobs/<int:job_id>/claim/", agent_views.AgentJobClaimView.as_view(), name="agent-job-claim"),
    path("jobs/<int:job_id>/start/", agent_views.AgentJobStartView.as_view(), name="agent-job-start"),
    path("jobs/<int:job_id>/result/", agent_views.AgentJobResultView.as_view(), name="agent-job-result"),
    path("settings/<str:key>/", agent_views.AgentSettingView.as_view(), name="agent-setting"),
]
