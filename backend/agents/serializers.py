from __future__ import annotations

from rest_framework import serializers

from agents.models import Job, JobResult, JobStatus, WorkerRegistration
from agents.queue import REPORTABLE_STATUSES


class WorkerRegistrationSerializer(serializers.ModelSerializer):
    available_capacity = serializers.IntegerField(read_only=True)

    class Meta:
        model = WorkerRegistration
        fields = [
            "id",
            "agent_id",
            "name",
            "project",
            "status",
            "capacity",
            "running_jobs",
            "available_capacity",
            "capabilities",
            "telemetry",
            "api_key_prefix",
            "last_heartbeat",
            "registered_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class AgentProvisionSerializer(serializers.Serializer):
    project = serializers.IntegerField()
    name = serializers.CharField(max_length=200)
    agent_id = serializers.CharField(max_length=128, required=False, allow_blank=True)
    capacity = serializers.IntegerField(min_value=1, default=1)
    capabilities = serializers.ListField(child=serializers.CharField(max_length=32), required=False)


class JobResultSerializer(serializers.ModelSerializer):
    agent_id = serializers.CharField(source="agent.agent_id", read_only=True, default=None)

    class Meta:
        model = JobResult
        fields = [
            "id",
            "attempt",
            "status",
            "agent_id",
            "summary",
            "results_log_base64",
            "report_base64",
            "error_message",
            "duration_seconds",
            "created_at",
        ]
        read_only_fields = fields


class JobSerializer(serializers.ModelSerializer):
    test_name = serializers.CharField(source="test.name", read_only=True, default=None)
    agent_id = serializers.CharField(source="agent.agent_id", read_only=True, default=None)

    class Meta:
        model = Job
        fields = [
            "id",
            "project",
            "test",
            "test_name",
            "run_id",
            "job_type",
            "status",
            "priority",
            "retries",
            "max_retries",
            "agent_id",
            "requested_agent",
            "error_message",
            "assigned_at",
            "started_at",
            "completed_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class JobDetailSerializer(JobSerializer):
    results = JobResultSerializer(many=True, read_only=True)

    class Meta(JobSerializer.Meta):
        fields = [*JobSerializer.Meta.fields, "results"]
        read_only_fields = fields


class AgentJobSerializer(JobSerializer):
    """What a worker sees: the job plus its execution payload."""

    class Meta(JobSerializer.Meta):
        fields = [*JobSerializer.Meta.fields, "payload"]
        read_only_fields = fields


class JobSubmitSerializer(serializers.Serializer):
    test = serializers.IntegerField()
    priority = serializers.IntegerField(default=0)
    requested_agent = serializers.IntegerField(required=False, allow_null=True)
    max_retries = serializers.IntegerField(min_value=0, required=False)


class JobCancelSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True)


class AgentRegisterSerializer(serializers.Serializer):
    agent_id = serializers.CharField(max_length=128, required=False, allow_blank=True)
    name = serializers.CharField(max_length=200, required=False, allow_blank=True)
    capacity = serializers.IntegerField(min_value=1, required=False)
    capabilities = serializers.ListField(child=serializers.CharField(max_length=32), required=False)
    system_info = serializers.DictField(required=False)


class AgentHeartbeatSerializer(serializers.Serializer):
    current_capacity = serializers.IntegerField(min_value=0, required=False)
    max_capacity = serializers.IntegerField(min_value=1, required=False)
    running_jobs = serializers.IntegerField(min_value=0, required=False)
    system_info = serializers.DictField(required=False)


class JobReportSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[(s.value, s.label) for s in REPORTABLE_STATUSES])
    summary = serializers.DictField(required=False)
    results_log_base64 = serializers.CharField(required=False, allow_blank=True)
    report_base64 = serializers.CharField(required=False, allow_blank=True)
    error_message = serializers.CharField(required=False, allow_blank=True)
    duration_seconds = serializers.FloatField(required=False, allow_null=True, min_value=0)

    def validate(self, attrs):
        if attrs["status"] == JobStatus.FAILED and not (attrs.get("error_message") or "").strip():
            attrs["error_message"] = "Job failed without an error message."
        return attrs
