from __future__ import annotations

from django.contrib.auth import get_user_model
from django.urls import reverse
from rest_framework.test import APIClient, APITestCase

from agents.lifecycle import hash_api_key
from agents.models import Job, JobStatus, WorkerRegistration
from agents.queue import claim_job
from agents.tests.helpers import make_agent, make_job
from catalog.models import Project, TestDefinition

User = get_user_model()


class UserApiTestBase(APITestCase):
    def setUp(self):
        self.member = User.objects.create_user(username="member", password="pass")
        self.outsider = User.objects.create_user(username="outsider", password="pass")
        self.project = Project.objects.create(name="Shop")
        self.project.members.add(self.member)
        self.client = APIClient()
        self.client.force_authenticate(self.member)


class AgentProvisioningTests(UserApiTestBase):
    def test_provision_returns_key_once_and_stores_digest(self):
        response = self.client.post(
            reverse("agent-list-create"),
            {"project": self.project.id, "name": "Perf runner", "capacity": 2},
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        body = response.json()["data"]
        raw_key = body["api_key"]
        agent = WorkerRegistration.objects.get(pk=body["id"])
        self.assertEqual(agent.api_key_hash, hash_api_key(raw_key))
        self.assertNotIn(raw_key, agent.api_key_hash)

        detail = self.client.get(reverse("agent-detail", args=[agent.id])).json()["data"]
        self.assertNotIn("api_key", detail)

    def test_cannot_provision_into_foreign_project(self):
        self.client.force_authenticate(self.outsider)
        response = self.client.post(
            reverse("agent-list-create"),
            {"project": self.project.id, "name": "x"},
            format="json",
        )
        self.assertEqual(response.status_code, 400)

    def test_duplicate_agent_id_conflicts(self):
        make_agent(self.project, name="perf-1")
        response = self.client.post(
            reverse("agent-list-create"),
            {"project": self.project.id, "name": "again", "agent_id": "perf-1"},
            format="json",
        )
        self.assertEqual(response.status_code, 409)

    def test_list_is_scoped(self):
        make_agent(self.project, name="mine")
        make_agent(Project.objects.create(name="Other"), name="theirs")
        names = [row["agent_id"] for row in self.client.get(reverse("agent-list-create")).json()["data"]]
        self.assertEqual(names, ["mine"])


class JobApiTests(UserApiTestBase):
    def test_submit_job_for_test(self):
        test = TestDefinition.objects.create(project=self.project, name="Smoke")

        response = self.client.post(reverse("job-list-create"), {"test": test.id, "priority": 3}, format="json")

        self.assertEqual(response.status_code, 201)
        body = response.json()["data"]
        self.assertTrue(body["run_id"].startswith("RUN-"))
        self.assertEqual(body["status"], JobStatus.PENDING)
        self.assertEqual(body["priority"], 3)

    def test_submit_rejects_foreign_test(self):
        foreign = TestDefinition.objects.create(project=Project.objects.create(name="Other"), name="x")
        response = self.client.post(reverse("job-list-create"), {"test": foreign.id}, format="json")
        self.assertEqual(response.status_code, 400)

    def test_list_is_paginated_and_filterable(self):
        for index in range(3):
            make_job(self.project, f"SCHED-ABC-00{index + 1}")
        make_job(self.project, "RUN-OTHER")

        response = self.client.get(reverse("job-list-create"), {"run_id": "SCHED-ABC", "page_size": 2})

        body = response.json()
        self.assertEqual(body["meta"]["total"], 3)
        self.assertEqual(len(body["data"]), 2)

    def test_detail_includes_results(self):
        job = make_job(self.project, "RUN-1")
        response = self.client.get(reverse("job-detail", args=[job.id]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["results"], [])

    def test_outsider_cannot_see_job(self):
        job = make_job(self.project, "RUN-1")
        self.client.force_authenticate(self.outsider)
        self.assertEqual(self.client.get(reverse("job-detail", args=[job.id])).status_code, 404)

    def test_cancel(self):
        agent, _ = make_agent(self.project)
        job = make_job(self.project, "RUN-1")
        claim_job(agent, job.id)

        response = self.client.post(reverse("job-cancel", args=[job.id]), {"reason": "wrong build"}, format="json")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(Job.objects.get(pk=job.id).status, JobStatus.CANCELLED)

        again = self.client.post(reverse("job-cancel", args=[job.id]), {}, format="json")
        self.assertEqual(again.status_code, 409)
