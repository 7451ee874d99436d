from __future__ import annotations

import uuid

from rest_framework import status
from rest_framework.generics import GenericAPIView
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from agents.lifecycle import provision_agent
from agents.models import Job, WorkerRegistration
from agents.queue import cancel_job, enqueue_job
from agents.serializers import (
    AgentProvisionSerializer,
    JobCancelSerializer,
    JobDetailSerializer,
    JobSerializer,
    JobSubmitSerializer,
    WorkerRegistrationSerializer,
)
from catalog.models import TestDefinition
from catalog.permissions import IsProjectMember, scope_to_user_projects, visible_projects
from config.domain_exceptions import ValidationError
from config.envelope import EnvelopePagination
from config.view_utils import ObjectPermissionMixin


class AgentListCreateView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        """List agents in the caller's projects."""
        agents = scope_to_user_projects(WorkerRegistration.objects.all(), request.user)
        project_id = request.query_params.get("project")
        if project_id:
            agents = agents.filter(project_id=project_id)
        return Response(WorkerRegistrationSerializer(agents, many=True).data, status=status.HTTP_200_OK)

    def post(self, request):
        """Provision an agent identity; the API key is only ever returned here."""
        serializer = AgentProvisionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        project = visible_projects(request.user).filter(id=data["project"]).first()
        if project is None:
            raise ValidationError("Unknown project.")

        agent, raw_key = provision_agent(
            project=project,
            name=data["name"],
            agent_id=(data.get("agent_id") or "").strip() or None,
            capacity=data["capacity"],
            capabilities=data.get("capabilities"),
        )
        body = WorkerRegistrationSerializer(agent).data
        body["api_key"] = raw_key
        return Response(body, status=status.HTTP_201_CREATED)


class AgentDetailView(ObjectPermissionMixin, APIView):
    permission_classes = [IsAuthenticated, IsProjectMember]
    not_found_message = "Agent not found."

    def get(self, request, agent_pk: int):
        """Return one agent."""
        agent = self.get_object_or_404(
            request=request,
            queryset=scope_to_user_projects(WorkerRegistration.objects.all(), request.user),
            id=agent_pk,
        )
        return Response(WorkerRegistrationSerializer(agent).data, status=status.HTTP_200_OK)


class JobListCreateView(GenericAPIView):
    permission_classes = [IsAuthenticated]
    pagination_class = EnvelopePagination

    def get(self, request):
        """Paginated job list, newest first, filterable by project/status/run_id."""
        qs = scope_to_user_projects(Job.objects.select_related("test", "agent"), request.user)
        for param, field in (("project", "project_id"), ("status", "status"), ("run_id", "run_id__startswith")):
            value = request.query_params.get(param)
            if value:
                qs = qs.filter(**{field: value})
        page = self.paginate_queryset(qs.order_by("-created_at", "-id"))
        return self.get_paginated_response(JobSerializer(page, many=True).data)

    def post(self, request):
        """Queue a job for one test outside of any trigger."""
        serializer = JobSubmitSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        test = scope_to_user_projects(TestDefinition.objects.all(), request.user).filter(id=data["test"]).first()
        if test is None:
            raise ValidationError("Unknown test.")

        requested_agent = None
        if data.get("requested_agent"):
            requested_agent = WorkerRegistration.objects.filter(
                id=data["requested_agent"],
                project_id=test.project_id,
            ).first()
            if requested_agent is None:
                raise ValidationError("Unknown agent for this project.")

        job = enqueue_job(
            test=test,
            run_id=f"RUN-{uuid.uuid4().hex[:12].upper()}",
            priority=data["priority"],
            requested_agent=requested_agent,
            max_retries=data.get("max_retries"),
        )
        return Response(JobSerializer(job).data, status=status.HTTP_201_CREATED)


class JobDetailView(ObjectPermissionMixin, APIView):
    permission_classes = [IsAuthenticated, IsProjectMember]
    not_found_message = "Job not found."

    def get(self, request, job_id: int):
        """Return a job together with every reported attempt."""
        job = self.get_object_or_404(
            request=request,
            queryset=scope_to_user_projects(Job.objects.prefetch_related("results"), request.user),
            id=job_id,
        )
        return Response(JobDetailSerializer(job).data, status=status.HTTP_200_OK)


class JobCancelView(ObjectPermissionMixin, APIView):
    permission_classes = [IsAuthenticated, IsProjectMember]
    not_found_message = "Job not found."

    def post(self, request, job_id: int):
        """Cancel a job that has not finished."""
        serializer = JobCancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        job = self.get_object_or_404(
            request=request,
            queryset=scope_to_user_projects(Job.objects.all(), request.user),
            id=job_id,
        )
        job = cancel_job(job, reason=serializer.validated_data.get("reason", ""))
        return Response(JobSerializer(job).data, status=status.HTTP_200_OK)
