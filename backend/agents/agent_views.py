"""Endpoints called by worker agents, authenticated with `X-Agent-Key`."""

from __future__ import annotations

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from agents.authentication import AgentKeyAuthentication, IsAgent
from agents.lifecycle import record_heartbeat, register_agent
from agents.models import Job
from agents.queue import JobOutcome, claim_job, peek_next_job, report_job_result, start_job
from agents.serializers import (
    AgentHeartbeatSerializer,
    AgentJobSerializer,
    AgentRegisterSerializer,
    JobReportSerializer,
    WorkerRegistrationSerializer,
)
from config.domain_exceptions import NotFoundError
from ops.app_settings import get_setting_value
from ops.settings_registry import APP_SETTINGS_BY_KEY


class AgentAPIView(APIView):
    authentication_classes = [AgentKeyAuthentication]
    permission_classes = [IsAgent]


class AgentRegisterView(AgentAPIView):
    def post(self, request):
        """Announce identity, capacity and capabilities at agent start."""
        serializer = AgentRegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        agent = register_agent(
            request.user,
            agent_id=(data.get("agent_id") or "").strip() or None,
            name=(data.get("name") or "").strip() or None,
            capacity=data.get("capacity"),
            capabilities=data.get("capabilities"),
            telemetry=data.get("system_info"),
        )
        return Response(WorkerRegistrationSerializer(agent).data, status=status.HTTP_200_OK)


class AgentHeartbeatView(AgentAPIView):
    def post(self, request):
        """Liveness and capacity report."""
        serializer = AgentHeartbeatSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        agent = record_heartbeat(
            request.user,
            max_capacity=data.get("max_capacity"),
            current_capacity=data.get("current_capacity"),
            running_jobs=data.get("running_jobs"),
            telemetry=data.get("system_info"),
        )
        return Response(
            {
                "status": agent.status,
                "capacity": agent.capacity,
                "running_jobs": agent.running_jobs,
            },
            status=status.HTTP_200_OK,
        )


class AgentJobPollView(AgentAPIView):
    def get(self, request):
        """Return zero or one claimable job; nothing while the agent is at capacity."""
        job = peek_next_job(request.user)
        jobs = [AgentJobSerializer(job).data] if job is not None else []
        return Response({"jobs": jobs}, status=status.HTTP_200_OK)


class AgentJobClaimView(AgentAPIView):
    def post(self, request, job_id: int):
        """pending -> assigned; 409 when another agent won the race."""
        job = claim_job(request.user, job_id)
        return Response(AgentJobSerializer(job).data, status=status.HTTP_200_OK)


class AgentJobStartView(AgentAPIView):
    def post(self, request, job_id: int):
        """assigned -> running."""
        job = start_job(request.user, job_id)
        return Response(AgentJobSerializer(job).data, status=status.HTTP_200_OK)


class AgentJobResultView(AgentAPIView):
    def post(self, request, job_id: int):
        """Terminal report with summary and base64 artifacts."""
        serializer = JobReportSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        job = report_job_result(
            request.user,
            job_id,
            JobOutcome(
                status=data["status"],
                summary=data.get("summary"),
                results_log_base64=data.get("results_log_base64", ""),
                report_base64=data.get("report_base64", ""),
                error_message=data.get("error_message", ""),
                duration_seconds=data.get("duration_seconds"),
            ),
        )
        return Response(AgentJobSerializer(job).data, status=status.HTTP_200_OK)


class AgentJobDetailView(AgentAPIView):
    def get(self, request, job_id: int):
        """Current status and holder, used for the ownership check before reporting."""
        job = Job.objects.select_related("agent", "test").filter(pk=job_id, project_id=request.user.project_id).first()
        if job is None:
            raise NotFoundError("Job not found.")
        return Response(AgentJobSerializer(job).data, status=status.HTTP_200_OK)


class AgentSettingView(AgentAPIView):
    def get(self, request, key: str):
        """Resolve a runtime setting, falling back to its registered default."""
        definition = APP_SETTINGS_BY_KEY.get(key)
        if definition is None:
            raise NotFoundError(f"Unknown setting '{key}'.")
        value = get_setting_value(key)
        return Response(
            {"key": key, "value": definition.default if value is None else value},
            status=status.HTTP_200_OK,
        )
