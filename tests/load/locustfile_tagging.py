"""Locust workload: tagging, voting and moderation against a running API.

Simulates the three populations of a crowd-tagging deployment:
  1. Tagger: registers a key, submits tags on a shared pool of content items,
     lists tags, and occasionally withdraws its own pending tags.
  2. Voter: reads content listings and votes on visible tags.
  3. Moderator: drains the moderation queue (lowest confidence first),
     approving most tags and rejecting some. Needs an admin key, minted with
     `python -m scripts.create_admin`, in TAGTRUST_ADMIN_KEY.

Validation checklist:
  - No 5xx other than 503 transient_failure under contention
  - 409 conflict appears only when two moderators race on the same tag
  - 429 with Retry-After once a user exhausts its write bucket

Run command:
    TAGTRUST_ADMIN_KEY=... locust -f tests/load/locustfile_tagging.py \\
      --host http://localhost:8000 \\
      --users 50 --spawn-rate 10 --run-time 2m \\
      --headless --only-summary --csv=results/tagging

Prerequisites:
    1. Start stack: docker compose up
    2. alembic upgrade head (from api/)
    3. mkdir -p results/
"""

import os
import random
import uuid

from locust import HttpUser, between, task

CONTENT_POOL = [f"photo-{i}" for i in range(200)]
NAME_POOL = [
    "Jane Doe",
    "John Roe",
    "Ann Poe",
    "Bob Loe",
    "José Núñez",
    "Mia Wong",
    "Liam Park",
    "Zoe Adams",
]


def _accept(resp, *codes: int) -> None:
    """Mark expected non-2xx outcomes (duplicates, conflicts, throttling) as success."""
    if resp.status_code < 400 or resp.status_code in codes:
        resp.success()
    else:
        resp.failure(f"unexpected {resp.status_code}: {resp.text[:200]}")


class Tagger(HttpUser):
    weight = 5
    wait_time = between(1, 3)

    def on_start(self) -> None:
        resp = self.client.post(
            "/api/v1/keys", json={"email": f"tagger-{uuid.uuid4().hex}@test.invalid"}
        )
        self.headers = {"X-API-Key": resp.json()["apiKey"]} if resp.status_code == 201 else {}
        self.pending: list[str] = []

    @task(5)
    def submit_tag(self) -> None:
        body = {
            "contentId": random.choice(CONTENT_POOL),
            "entityName": random.choice(NAME_POOL),
        }
        if random.random() < 0.3:
            body["attrs"] = {"jersey_number": str(random.randint(1, 99))}
        with self.client.post(
            "/api/v1/tags", json=body, headers=self.headers, catch_response=True
        ) as resp:
            _accept(resp, 409, 429)
            if resp.status_code == 201 and resp.json()["status"] == "pending":
                self.pending.append(resp.json()["tagId"])

    @task(3)
    def list_content(self) -> None:
        self.client.get(
            "/api/v1/tags",
            params={"contentId": random.choice(CONTENT_POOL)},
            headers=self.headers,
            name="/api/v1/tags?contentId=[id]",
        )

    @task(1)
    def withdraw(self) -> None:
        if not self.pending:
            return
        tag_id = self.pending.pop()
        with self.client.delete(
            f"/api/v1/tags/{tag_id}",
            headers=self.headers,
            catch_response=True,
            name="/api/v1/tags/[id]",
        ) as resp:
            # Already decided by a moderator
            _accept(resp, 404, 409, 429)

    @task(1)
    def my_reputation(self) -> None:
        self.client.get("/api/v1/users/me/reputation", headers=self.headers)


class Voter(HttpUser):
    weight = 3
    wait_time = between(0.5, 2)

    def on_start(self) -> None:
        resp = self.client.post(
            "/api/v1/keys", json={"email": f"voter-{uuid.uuid4().hex}@test.invalid"}
        )
        self.headers = {"X-API-Key": resp.json()["apiKey"]} if resp.status_code == 201 else {}

    @task
    def vote_on_content(self) -> None:
        listing = self.client.get(
            "/api/v1/tags",
            params={"contentId": random.choice(CONTENT_POOL)},
            name="/api/v1/tags?contentId=[id]",
        )
        if listing.status_code != 200:
            return
        tags = listing.json()["tags"]
        if not tags:
            return
        tag = random.choice(tags)
        with self.client.post(
            f"/api/v1/tags/{tag['id']}/votes",
            json={"direction": random.choice(["up", "up", "down"])},
            headers=self.headers,
            catch_response=True,
            name="/api/v1/tags/[id]/votes",
        ) as resp:
            # Own tag, or rejected since listing
            _accept(resp, 403, 404, 409, 429)


class Moderator(HttpUser):
    weight = 1
    wait_time = between(2, 5)

    def on_start(self) -> None:
        self.headers = {"X-API-Key": os.environ.get("TAGTRUST_ADMIN_KEY", "")}

    @task
    def drain_queue(self) -> None:
        queue = self.client.get(
            "/api/v1/admin/tags", params={"limit": 20}, headers=self.headers
        )
        if queue.status_code != 200:
            return
        items = queue.json()["items"]
        if not items:
            return

        approve = [t["id"] for t in items if t["confidence"] >= 0.5]
        reject = [t["id"] for t in items if t["confidence"] < 0.5]

        if approve:
            with self.client.post(
                "/api/v1/admin/tags/batch-approve",
                json={"tagIds": approve},
                headers=self.headers,
                catch_response=True,
            ) as resp:
                _accept(resp, 429, 503)

        for tag_id in reject:
            with self.client.post(
                f"/api/v1/admin/tags/{tag_id}/reject",
                json={"reason": "downvoted by the crowd"},
                headers=self.headers,
                catch_response=True,
                name="/api/v1/admin/tags/[id]/reject",
            ) as resp:
                _accept(resp, 409, 429, 503)
