from __future__ import annotations

import hmac

from rest_framework import status
from rest_framework.generics import GenericAPIView
from rest_framework.permissions import AllowAny, IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from catalog.permissions import IsProjectMember, scope_to_user_projects, visible_projects
from config.domain_exceptions import NotFoundError, ValidationError
from config.envelope import EnvelopePagination
from config.view_utils import ObjectPermissionMixin

from .dispatcher import dispatch_due_triggers, fire_trigger_now
from .errors import WebhookSecretMismatch
from .models import ExecutionSource, Trigger, TriggerType
from .serializers import (
    TriggerEventSerializer,
    TriggerExecutionSerializer,
    TriggerSerializer,
    TriggerWriteSerializer,
)

WEBHOOK_SECRET_HEADER = "X-Webhook-Secret"

_TRUE_VALUES = {"1", "true", "yes", "on"}


class TriggerListCreateView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        """List triggers in the caller's projects, filterable by project and is_active."""
        triggers = scope_to_user_projects(Trigger.objects.select_related("agent"), request.user)
        project_id = request.query_params.get("project")
        if project_id:
            triggers = triggers.filter(project_id=project_id)
        is_active = request.query_params.get("is_active")
        if is_active is not None and is_active != "":
            triggers = triggers.filter(is_active=is_active.strip().lower() in _TRUE_VALUES)
        return Response(TriggerSerializer(triggers, many=True).data, status=status.HTTP_200_OK)

    def post(self, request):
        """Create a trigger; recurring triggers get their first next_fire_at on save."""
        serializer = TriggerWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        project = serializer.validated_data["project"]
        if not visible_projects(request.user).filter(id=project.id).exists():
            raise ValidationError("Unknown project.")
        trigger = serializer.save(created_by=request.user)
        return Response(TriggerSerializer(trigger).data, status=status.HTTP_201_CREATED)


class TriggerObjectView(ObjectPermissionMixin, APIView):
    permission_classes = [IsAuthenticated, IsProjectMember]
    not_found_message = "Trigger not found."

    def get_trigger(self, request, trigger_id: int) -> Trigger:
        return self.get_object_or_404(
            request=request,
            queryset=scope_to_user_projects(Trigger.objects.select_related("agent"), request.user),
            id=trigger_id,
        )


class TriggerDetailView(TriggerObjectView):
    def get(self, request, trigger_id: int):
        trigger = self.get_trigger(request, trigger_id)
        return Response(TriggerSerializer(trigger).data, status=status.HTTP_200_OK)

    def patch(self, request, trigger_id: int):
        """Partial update; schedule changes recompute next_fire_at."""
        trigger = self.get_trigger(request, trigger_id)
        serializer = TriggerWriteSerializer(trigger, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        trigger = serializer.save()
        return Response(TriggerSerializer(trigger).data, status=status.HTTP_200_OK)

    def delete(self, request, trigger_id: int):
        trigger = self.get_trigger(request, trigger_id)
        trigger.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


class TriggerExecutionsView(ObjectPermissionMixin, GenericAPIView):
    permission_classes = [IsAuthenticated, IsProjectMember]
    pagination_class = EnvelopePagination
    not_found_message = "Trigger not found."

    def get(self, request, trigger_id: int):
        """Paginated firing history, newest first."""
        trigger = self.get_object_or_404(
            request=request,
            queryset=scope_to_user_projects(Trigger.objects.all(), request.user),
            id=trigger_id,
        )
        page = self.paginate_queryset(trigger.executions.order_by("-triggered_at", "-id"))
        return self.get_paginated_response(TriggerExecutionSerializer(page, many=True).data)


class TriggerFireView(TriggerObjectView):
    def post(self, request, trigger_id: int):
        """Fire the trigger now; the recurring schedule is not advanced."""
        trigger = self.get_trigger(request, trigger_id)
        execution = fire_trigger_now(trigger, source=ExecutionSource.MANUAL)
        return Response(TriggerExecutionSerializer(execution).data, status=status.HTTP_201_CREATED)


class TriggerEventView(APIView):
    """
    External deployment events, authenticated by the trigger's webhook secret.

    Events for a different environment than the trigger's are acknowledged
    without firing.
    """

    authentication_classes = []
    permission_classes = [AllowAny]

    def post(self, request, trigger_id: int):
        trigger = Trigger.objects.select_related("agent").filter(id=trigger_id).first()
        if trigger is None or trigger.trigger_type != TriggerType.DEPLOYMENT:
            raise NotFoundError("Trigger not found.")

        provided = request.headers.get(WEBHOOK_SECRET_HEADER, "")
        if not trigger.webhook_secret or not hmac.compare_digest(provided.encode(), trigger.webhook_secret.encode()):
            raise WebhookSecretMismatch("Invalid webhook secret.")

        serializer = TriggerEventSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        environment = serializer.validated_data.get("environment")

        if not trigger.is_active:
            return Response({"fired": False, "reason": "Trigger is inactive."}, status=status.HTTP_200_OK)
        if environment and trigger.deployment_environment and environment != trigger.deployment_environment:
            return Response(
                {"fired": False, "reason": f"Trigger listens for {trigger.deployment_environment} deployments."},
                status=status.HTTP_200_OK,
            )

        event_payload = dict(serializer.validated_data.get("payload") or {})
        if environment:
            event_payload["environment"] = environment
        execution = fire_trigger_now(trigger, source=ExecutionSource.EXTERNAL_EVENT, event_payload=event_payload)
        return Response(
            {"fired": True, "execution": TriggerExecutionSerializer(execution).data},
            status=status.HTTP_201_CREATED,
        )


class TriggerDispatchView(APIView):
    permission_classes = [IsAuthenticated, IsAdminUser]

    def post(self, request):
        """Run one dispatch pass so an external scheduler can drive the tick over HTTP."""
        result = dispatch_due_triggers()
        return Response(result.as_dict(), status=status.HTTP_200_OK)
