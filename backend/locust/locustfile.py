"""
Locust Load Test Suite

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Test the last-portion race
  locust -f locustfile.py --tags throughput   # Test the listing cache
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests

Tokens are minted locally with the API's SECRET_KEY, so run with the same
environment as the server.
"""

import random
import uuid
from datetime import datetime, timezone, timedelta

from locust import HttpUser, task, between, tag, events

from foodshare.core.security import create_access_token

# Shared state
RESOURCE_IDS = []
CONCURRENCY_RESOURCE_ID = None
CONCURRENCY_PORTIONS = 10


def auth_headers(user_id: str | None = None) -> dict:
    token = create_access_token({"sub": user_id or f"load-{uuid.uuid4()}"})
    return {"Authorization": f"Bearer {token}"}


def resource_payload(capacity: int, title: str = "Load test meal") -> dict:
    expires = (datetime.now(timezone.utc) + timedelta(hours=random.randint(1, 48))).isoformat()
    return {
        "title": title,
        "description": "Posted by locust",
        "capacity": capacity,
        "expires_at": expires,
        "location_name": "Kochi",
        "latitude": 10.0 + random.uniform(-0.05, 0.05),
        "longitude": 76.0 + random.uniform(-0.05, 0.05),
    }


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print("SETUP: concurrency users create the contested resource on start")
    print("=" * 60)


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - 100 users -> 10 portions

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT COUNT(*) FROM claims WHERE resource_id = X;
    Should be exactly 10, and resources.remaining should be 0.
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.headers = auth_headers()
        if not CONCURRENCY_RESOURCE_ID:
            resp = self.client.post(
                "/api/v1/resources/",
                json=resource_payload(CONCURRENCY_PORTIONS, "Concurrency Test Meal"),
                headers=auth_headers("load-owner"),
            )
            if resp.status_code == 201:
                globals()["CONCURRENCY_RESOURCE_ID"] = resp.json()["id"]
                print(f"\nCreated resource {CONCURRENCY_RESOURCE_ID} with {CONCURRENCY_PORTIONS} portions\n")

    @tag("concurrency")
    @task
    def claim_limited_portions(self):
        """All users fight for the same portions."""
        if not CONCURRENCY_RESOURCE_ID:
            return

        with self.client.post(
            f"/api/v1/resources/{CONCURRENCY_RESOURCE_ID}/claims",
            headers=self.headers,
            name="/api/v1/resources/{id}/claims",
            catch_response=True,
        ) as resp:
            if resp.status_code == 201:
                resp.success()
            elif resp.status_code == 409:
                resp.success()  # Expected: exhausted, duplicate or busy
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - Cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: Stop Redis, run again
    """
    wait_time = between(0.1, 0.5)

    def on_start(self):
        self.headers = auth_headers()

    @tag("throughput", "read")
    @task(10)
    def list_resources_cached(self):
        page = random.randint(1, 5)
        self.client.get(
            f"/api/v1/resources/?page={page}&page_size=20",
            headers=self.headers,
            name="/api/v1/resources/ [cached]",
        )

    @tag("throughput", "read")
    @task(5)
    def nearby_search(self):
        self.client.get(
            "/api/v1/resources/nearby?lat=10.0&lng=76.0&radius_km=10",
            headers=self.headers,
            name="/api/v1/resources/nearby",
        )

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s
    """
    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.headers = auth_headers()

    def _expect(self, resp, codes):
        if resp.status_code in codes:
            resp.success()
        else:
            resp.failure(f"Expected {codes}, got {resp.status_code}")

    @tag("edge")
    @task
    def unknown_resource(self):
        with self.client.post(
            f"/api/v1/resources/{uuid.uuid4()}/claims",
            headers=self.headers,
            name="/api/v1/resources/{id}/claims [missing]",
            catch_response=True,
        ) as resp:
            self._expect(resp, [404])

    @tag("edge")
    @task
    def zero_capacity(self):
        with self.client.post(
            "/api/v1/resources/",
            json=resource_payload(0),
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, [400, 422])

    @tag("edge")
    @task
    def radius_too_large(self):
        with self.client.get(
            "/api/v1/resources/nearby?lat=10&lng=76&radius_km=100000",
            headers=self.headers,
            name="/api/v1/resources/nearby [bad radius]",
            catch_response=True,
        ) as resp:
            self._expect(resp, [400])

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post(
            "/api/v1/resources/",
            data="not json at all",
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, [400, 422])

    @tag("edge")
    @task
    def missing_auth(self):
        with self.client.get("/api/v1/notifications/", catch_response=True) as resp:
            self._expect(resp, [401])


class RealisticUser(HttpUser):
    """
    TEST 4: Realistic mixed workload

    Run: locust -f locustfile.py -u 200 -r 20 --run-time 120s

    Mostly browsing, some claims, rare posts and inbox checks.
    """
    wait_time = between(1, 3)

    def on_start(self):
        self.headers = auth_headers()

    @task(50)
    def browse_resources(self):
        resp = self.client.get("/api/v1/resources/?page=1&page_size=20", headers=self.headers)
        if resp.status_code == 200:
            for resource in resp.json().get("resources", []):
                if resource["id"] not in RESOURCE_IDS:
                    RESOURCE_IDS.append(resource["id"])

    @task(20)
    def view_resource(self):
        if RESOURCE_IDS:
            self.client.get(
                f"/api/v1/resources/{random.choice(RESOURCE_IDS)}",
                headers=self.headers,
                name="/api/v1/resources/{id}",
            )

    @task(10)
    def claim_portion(self):
        if RESOURCE_IDS:
            self.client.post(
                f"/api/v1/resources/{random.choice(RESOURCE_IDS)}/claims",
                headers=self.headers,
                name="/api/v1/resources/{id}/claims",
            )

    @task(5)
    def check_inbox(self):
        self.client.get("/api/v1/notifications/unread-count", headers=self.headers)

    @task(3)
    def post_resource(self):
        resp = self.client.post(
            "/api/v1/resources/",
            json=resource_payload(random.randint(1, 20), f"Meal {random.randint(1, 10000)}"),
            headers=self.headers,
        )
        if resp.status_code == 201:
            RESOURCE_IDS.append(resp.json()["id"])
