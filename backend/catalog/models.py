from __future__ import annotations

import base64

from django.conf import settings
from django.db import models


class Project(models.Model):
    """Owning scope for tests, triggers, agents and jobs."""

    name = models.CharField(max_length=200)
    members = models.ManyToManyField(
        settings.AUTH_USER_MODEL,
        related_name="testops_projects",
        blank=True,
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name", "id"]

    def __str__(self) -> str:  # pragma: no cover
        return self.name


class TestKind(models.TextChoices):
    AUTOMATION = "automation", "Automation"
    PERFORMANCE = "performance", "Performance"


class TestDefinition(models.Model):
    """A runnable test: either browser automation steps or a load-test plan."""

    __test__ = False

    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name="tests")
    name = models.CharField(max_length=200)
    kind = models.CharField(max_length=20, choices=TestKind.choices, default=TestKind.AUTOMATION)

    base_url = models.URLField(max_length=500, blank=True)
    steps = models.JSONField(default=list, blank=True)

    test_plan = models.TextField(blank=True, help_text="Load-test plan document (e.g. JMX XML).")
    parameters = models.JSONField(
        default=dict,
        blank=True,
        help_text="Tool property overrides such as threads, rampup and duration.",
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name", "id"]
        indexes = [models.Index(fields=["project", "kind"], name="catalog_tes_project_6b1f0e_idx")]

    def __str__(self) -> str:  # pragma: no cover
        return self.name

    def build_job_payload(self) -> dict:
        """Return the opaque payload a worker needs to execute this test."""
        if self.kind == TestKind.PERFORMANCE:
            encoded = base64.b64encode((self.test_plan or "").encode("utf-8")).decode("ascii")
            return {
                "test_name": self.name,
                "test_plan_base64": encoded,
                "parameters": dict(self.parameters or {}),
            }
        return {
            "test_name": self.name,
            "base_url": self.base_url,
            "steps": list(self.steps or []),
        }


class TestSuite(models.Model):
    __test__ = False

    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name="suites")
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name", "id"]

    def __str__(self) -> str:  # pragma: no cover
        return self.name

    def ordered_members(self):
        return self.members.select_related("test").order_by("execution_order", "id")


class SuiteMembership(models.Model):
    suite = models.ForeignKey(TestSuite, on_delete=models.CASCADE, related_name="members")
    test = models.ForeignKey(TestDefinition, on_delete=models.CASCADE, related_name="suite_memberships")
    execution_order = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ["execution_order", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["suite", "execution_order"],
                name="catalog_suite_membership_unique_order",
            )
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.suite_id}:{self.execution_order}:{self.test_id}"
