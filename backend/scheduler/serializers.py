from __future__ import annotations

from rest_framework import serializers

from agents.models import WorkerRegistration
from catalog.models import TestDefinition, TestSuite

from .models import DeploymentEnvironment, TargetType, Trigger, TriggerExecution, TriggerType
from .recurrence import ScheduleType, is_valid_timezone


class TriggerSerializer(serializers.ModelSerializer):
    schedule_description = serializers.SerializerMethodField()

    class Meta:
        model = Trigger
        fields = [
            "id",
            "project",
            "name",
            "description",
            "trigger_type",
            "target_type",
            "target_id",
            "agent",
            "priority",
            "is_active",
            "schedule_type",
            "schedule_time",
            "schedule_day_of_week",
            "schedule_timezone",
            "schedule_description",
            "deployment_environment",
            "next_fire_at",
            "last_fired_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_schedule_description(self, obj: Trigger) -> str | None:
        if not obj.is_recurring:
            return None
        return obj.schedule_rule().describe()


class TriggerWriteSerializer(serializers.ModelSerializer):
    """
    Create/update payload for triggers.

    The project is fixed at creation; partial updates validate the merged
    state so a target or agent can never point outside the trigger's project.
    """

    schedule_type = serializers.ChoiceField(choices=ScheduleType.choices, required=False)
    schedule_day_of_week = serializers.IntegerField(min_value=0, max_value=6, required=False)
    deployment_environment = serializers.ChoiceField(
        choices=DeploymentEnvironment.choices,
        required=False,
        allow_blank=True,
    )
    webhook_secret = serializers.CharField(max_length=128, required=False, allow_blank=True, write_only=True)

    class Meta:
        model = Trigger
        fields = [
            "project",
            "name",
            "description",
            "trigger_type",
            "target_type",
            "target_id",
            "agent",
            "priority",
            "is_active",
            "schedule_type",
            "schedule_time",
            "schedule_day_of_week",
            "schedule_timezone",
            "deployment_environment",
            "webhook_secret",
        ]

    def validate_schedule_timezone(self, value: str) -> str:
        value = (value or "").strip()
        if not value or not is_valid_timezone(value):
            raise serializers.ValidationError("Unknown timezone.")
        return value

    def validate_project(self, value):
        if self.instance is not None and value.id != self.instance.project_id:
            raise serializers.ValidationError("A trigger cannot move between projects.")
        return value

    def _merged(self, attrs: dict, field: str):
        if field in attrs:
            return attrs[field]
        if self.instance is not None:
            return getattr(self.instance, field)
        return Trigger._meta.get_field(field).get_default()

    def validate(self, attrs):
        project = self._merged(attrs, "project")
        target_type = self._merged(attrs, "target_type")
        target_id = self._merged(attrs, "target_id")
        trigger_type = self._merged(attrs, "trigger_type")

        target_model = TestSuite if target_type == TargetType.SUITE else TestDefinition
        if not target_model.objects.filter(pk=target_id, project=project).exists():
            raise serializers.ValidationError({"target_id": "Target not found in this project."})

        agent: WorkerRegistration | None = self._merged(attrs, "agent")
        if agent is not None and agent.project_id != project.id:
            raise serializers.ValidationError({"agent": "Agent belongs to a different project."})

        if trigger_type == TriggerType.DEPLOYMENT and not self._merged(attrs, "deployment_environment"):
            raise serializers.ValidationError(
                {"deployment_environment": "Deployment triggers need an environment."}
            )
        return attrs


class TriggerExecutionSerializer(serializers.ModelSerializer):
    class Meta:
        model = TriggerExecution
        fields = [
            "id",
            "trigger",
            "project",
            "source",
            "status",
            "triggered_at",
            "finished_at",
            "error_message",
            "run_prefix",
            "job",
            "jobs_created",
            "event_payload",
            "run_status",
            "tests_passed",
            "tests_failed",
            "run_results",
            "run_finished_at",
        ]
        read_only_fields = fields


class TriggerEventSerializer(serializers.Serializer):
    environment = serializers.ChoiceField(choices=DeploymentEnvironment.choices, required=False)
    payload = serializers.DictField(required=False)
