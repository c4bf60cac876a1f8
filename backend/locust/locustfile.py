"""
Locust Load Test Suite

Tokens are minted locally with the shared SECRET_KEY (the API only verifies
bearer tokens), so the target must run with the same secret.

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Test overbooking
  locust -f locustfile.py --tags throughput   # Test cache
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests
"""

import random
import uuid
from datetime import datetime, timezone, timedelta

from locust import HttpUser, task, between, tag, events

from planora.core.security import create_access_token

# Shared state
EVENT_IDS = []
CONCURRENCY_EVENT_ID = None
CONCURRENCY_CAPACITY = 10

ORGANIZER_ID = "load-organizer"


def auth_headers(user_id: str, role: str = "participant") -> dict:
    token = create_access_token(
        data={"sub": user_id, "email": f"{user_id}@load.test", "role": role, "name": user_id},
        expires_delta=timedelta(hours=2),
    )
    return {"Authorization": f"Bearer {token}"}


def participant_headers() -> dict:
    return auth_headers(f"load-{uuid.uuid4().hex[:10]}")


def organizer_headers() -> dict:
    return auth_headers(ORGANIZER_ID, role="admin")


def event_payload(title: str, capacity: int, days_ahead: int = 30) -> dict:
    start = datetime.now(timezone.utc) + timedelta(days=days_ahead)
    return {
        "title": title,
        "description": "Load test event",
        "location": "Test",
        "start_date": start.isoformat(),
        "end_date": (start + timedelta(hours=3)).isoformat(),
        "capacity": capacity,
        "price": 10,
        "status": "published",
    }


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print("SETUP: reservations are capped per event; 409 is an expected answer")
    print("=" * 60)


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - 100 users → 10 spots

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT registered_count, capacity FROM events WHERE id = X;
      SELECT SUM(number_of_tickets) FROM reservations
       WHERE event_id = X AND status = 'confirmed';
    Both sums must be equal and ≤ 10
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.headers = participant_headers()

        if not CONCURRENCY_EVENT_ID:
            resp = self.client.post(
                "/api/v1/events/",
                json=event_payload("Concurrency Test Event", CONCURRENCY_CAPACITY),
                headers=organizer_headers(),
            )
            if resp.status_code == 201:
                globals()["CONCURRENCY_EVENT_ID"] = resp.json()["id"]
                print(f"\n✓ Created event {CONCURRENCY_EVENT_ID} with {CONCURRENCY_CAPACITY} spots\n")

    @tag("concurrency")
    @task
    def reserve_limited_spots(self):
        """All users fight for the same 10 spots."""
        if not CONCURRENCY_EVENT_ID:
            return

        with self.client.post(
            "/api/v1/reservations/",
            json={"event_id": CONCURRENCY_EVENT_ID, "number_of_tickets": random.randint(1, 2)},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            if resp.status_code == 201:
                resp.success()
            elif resp.status_code == 409:
                resp.success()  # Expected: full, or already holding a reservation
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - Cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: REDIS_ENABLED=false on the API, run again

    Compare:
      - Avg response time
      - Requests/sec
      - P95/P99 latency
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def list_events_cached(self):
        page = random.randint(1, 5)
        self.client.get(
            f"/api/v1/events/?page={page}&page_size=20",
            name="/api/v1/events/ [cached]",
        )

    @tag("throughput", "read")
    @task(3)
    def get_event_detail(self):
        """Single events are never cached."""
        if EVENT_IDS:
            event_id = random.choice(EVENT_IDS)
            self.client.get(f"/api/v1/events/{event_id}", name="/api/v1/events/{id}")

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.headers = participant_headers()

    def _expect(self, resp, allowed):
        if resp.status_code in allowed:
            resp.success()
        else:
            resp.failure(f"Expected {allowed}, got {resp.status_code}")

    @tag("edge")
    @task
    def invalid_event_id(self):
        with self.client.post(
            "/api/v1/reservations/",
            json={"event_id": 999999, "number_of_tickets": 1},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, [404])

    @tag("edge")
    @task
    def zero_tickets(self):
        with self.client.post(
            "/api/v1/reservations/",
            json={"event_id": 1, "number_of_tickets": 0},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, [422])

    @tag("edge")
    @task
    def too_many_tickets(self):
        with self.client.post(
            "/api/v1/reservations/",
            json={"event_id": 1, "number_of_tickets": 999},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, [422])

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post(
            "/api/v1/reservations/",
            data="not json at all",
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, [400, 422])

    @tag("edge")
    @task
    def missing_auth(self):
        with self.client.post(
            "/api/v1/reservations/",
            json={"event_id": 1, "number_of_tickets": 1},
            catch_response=True,
        ) as resp:
            self._expect(resp, [401])

    @tag("edge")
    @task
    def forged_token(self):
        with self.client.get(
            "/api/v1/reservations/my",
            headers={"Authorization": "Bearer forged.token.value"},
            catch_response=True,
        ) as resp:
            self._expect(resp, [401])

    @tag("edge")
    @task
    def participant_on_admin_route(self):
        with self.client.post(
            "/api/v1/reservations/verify-qr",
            json={"qr_code": "QR-NOTHING"},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, [403])


class RealisticUser(HttpUser):
    """
    TEST 4: Realistic mixed workload

    Run: locust -f locustfile.py -u 200 -r 20 --run-time 120s

    Simulates real traffic:
      - Mostly browsing
      - Some reservations and cancellations
      - Rare event creation by an organizer
    """
    wait_time = between(1, 3)

    def on_start(self):
        self.headers = participant_headers()
        self.reservation_ids = []

    @task(50)
    def browse_events(self):
        resp = self.client.get("/api/v1/events/?page=1&page_size=20")
        if resp.status_code == 200:
            for event in resp.json().get("events", []):
                if event["id"] not in EVENT_IDS:
                    EVENT_IDS.append(event["id"])

    @task(20)
    def view_event(self):
        if EVENT_IDS:
            self.client.get(f"/api/v1/events/{random.choice(EVENT_IDS)}", name="/api/v1/events/{id}")

    @task(10)
    def reserve(self):
        if EVENT_IDS:
            resp = self.client.post(
                "/api/v1/reservations/",
                json={"event_id": random.choice(EVENT_IDS), "number_of_tickets": random.randint(1, 3)},
                headers=self.headers,
            )
            if resp.status_code == 201:
                self.reservation_ids.append(resp.json()["id"])

    @task(5)
    def my_reservations(self):
        self.client.get("/api/v1/reservations/my", headers=self.headers)

    @task(2)
    def cancel(self):
        if self.reservation_ids:
            reservation_id = self.reservation_ids.pop()
            self.client.patch(
                f"/api/v1/reservations/my/{reservation_id}/cancel",
                json={"reason": "Load test"},
                headers=self.headers,
                name="/api/v1/reservations/my/{id}/cancel",
            )

    @task(1)
    def create_event(self):
        resp = self.client.post(
            "/api/v1/events/",
            json=event_payload(
                f"Event {random.randint(1, 10000)}",
                random.randint(10, 500),
                days_ahead=random.randint(2, 90),
            ),
            headers=organizer_headers(),
        )
        if resp.status_code == 201:
            EVENT_IDS.append(resp.json()["id"])
