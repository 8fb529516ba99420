"""
Locust Load Test Suite

The API does not provision users, so the run expects a seeded users table
and mints bearer tokens with the server's SECRET_KEY:

  LOAD_STAFF_USER_ID   staff account that creates the test event (default 1)
  LOAD_USER_ID_START   first player id (default 2)
  LOAD_USER_COUNT      number of seeded players (default 200)
  LOAD_EVENT_SEATS     seats in the rush event (default 8)
  SECRET_KEY           same value the API runs with

Run scenarios:
  locust -f locustfile.py --tags rush         # registration rush on one event
  locust -f locustfile.py --tags throughput   # cached event listing
  locust -f locustfile.py --tags churn        # register/cancel with promotion
  locust -f locustfile.py                     # All tests

After a rush, verify:
  SELECT current_seats, max_seats FROM events WHERE id = X;
  SELECT status, COUNT(*) FROM event_participants WHERE event_id = X GROUP BY status;
Confirmed must equal current_seats and never exceed max_seats; waiting
positions must be 1..N.
"""

import itertools
import os
import threading
from datetime import datetime, timezone, timedelta

from jose import jwt
from locust import HttpUser, task, between, tag, events

SECRET_KEY = os.getenv("SECRET_KEY", "super-secret-key-change-in-production")
STAFF_USER_ID = int(os.getenv("LOAD_STAFF_USER_ID", "1"))
USER_ID_START = int(os.getenv("LOAD_USER_ID_START", "2"))
USER_COUNT = int(os.getenv("LOAD_USER_COUNT", "200"))
EVENT_SEATS = int(os.getenv("LOAD_EVENT_SEATS", "8"))

_user_ids = itertools.cycle(range(USER_ID_START, USER_ID_START + USER_COUNT))
_user_lock = threading.Lock()

RUSH_EVENT_ID = None


def _headers(user_id: int) -> dict:
    expire = datetime.now(timezone.utc) + timedelta(hours=2)
    token = jwt.encode({"sub": str(user_id), "exp": expire}, SECRET_KEY, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


def _next_user_id() -> int:
    with _user_lock:
        return next(_user_ids)


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    """Setup: create the rush event as staff."""
    global RUSH_EVENT_ID
    if environment.host is None:
        return

    import httpx

    future = (datetime.now(timezone.utc) + timedelta(days=7)).isoformat()
    resp = httpx.post(
        f"{environment.host}/api/v1/events",
        json={
            "title": "Saturday americano (load test)",
            "event_type": "tournament",
            "event_date": future,
            "max_seats": EVENT_SEATS,
            "price": "1500.00",
        },
        headers=_headers(STAFF_USER_ID),
    )
    if resp.status_code == 201:
        RUSH_EVENT_ID = resp.json()["id"]
        print(f"\n✓ Created event {RUSH_EVENT_ID} with {EVENT_SEATS} seats\n")
    else:
        print(f"\n✗ Could not create rush event: {resp.status_code} {resp.text}\n")


class RushUser(HttpUser):
    """
    TEST 1: Registration rush - every player hits the same few seats.

    Run: locust -f locustfile.py --tags rush -u 100 -r 50 --run-time 30s

    201 confirmed and 201 waiting are both success; 409 ALREADY_REGISTERED
    is expected once a player is in.
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.user_id = _next_user_id()
        self.headers = _headers(self.user_id)

    @tag("rush")
    @task
    def register(self):
        if not RUSH_EVENT_ID:
            return

        with self.client.post(
            "/api/v1/participants",
            json={"event_id": RUSH_EVENT_ID},
            headers=self.headers,
            catch_response=True,
            name="/api/v1/participants",
        ) as resp:
            if resp.status_code in (201, 409):
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - cached listing vs database.

    Run with and without Redis and compare p95 latency and requests/sec:
      locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput")
    @task(5)
    def list_events(self):
        self.client.get("/api/v1/events?page=1&page_size=20", name="/api/v1/events")

    @tag("throughput")
    @task(1)
    def event_detail(self):
        if RUSH_EVENT_ID:
            self.client.get(f"/api/v1/events/{RUSH_EVENT_ID}", name="/api/v1/events/[id]")


class ChurnUser(HttpUser):
    """
    TEST 3: Churn - players register and cancel, forcing promotions while
    the rush is running. Seat counts must stay consistent throughout.
    """
    wait_time = between(0.2, 1.0)

    def on_start(self):
        self.user_id = _next_user_id()
        self.headers = _headers(self.user_id)

    @tag("churn")
    @task
    def register_then_cancel(self):
        if not RUSH_EVENT_ID:
            return

        self.client.post(
            "/api/v1/participants",
            json={"event_id": RUSH_EVENT_ID},
            headers=self.headers,
            name="/api/v1/participants",
        )
        self.client.delete(
            f"/api/v1/participants/{RUSH_EVENT_ID}/{self.user_id}",
            headers=self.headers,
            name="/api/v1/participants/[event]/[user]",
        )
