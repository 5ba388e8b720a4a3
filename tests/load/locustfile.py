"""
Locust load testing for the job bridge API.

Run with:
    locust -f tests/load/locustfile.py --host=http://localhost:3001

Or headless:
    locust -f tests/load/locustfile.py --host=http://localhost:3001 \
        --headless -u 100 -r 10 --run-time 5m
"""

import random
import uuid
from typing import Any

from locust import HttpUser, between, task


def random_payload() -> dict[str, Any]:
    """Build a job payload shaped like the messages the worker expects."""
    return {
        "to": f"+1555{random.randint(0, 9999999):07d}",
        "msg": f"Load test {uuid.uuid4().hex[:8]}",
    }


class JobBridgeUser(HttpUser):
    """
    Simulated client of the job bridge.

    Simulates realistic traffic patterns:
    - Acknowledged submissions via /enqueue (most common)
    - Fire-and-forget submissions via /send
    - Health checks
    """

    wait_time = between(0.1, 0.5)

    @task(10)
    def enqueue_job(self):
        """Submit a job and wait for the publish."""
        with self.client.post(
            "/enqueue",
            json=random_payload(),
            name="/enqueue [POST]",
            catch_response=True,
        ) as response:
            if response.status_code != 200:
                response.failure(f"Enqueue failed: {response.text}")

    @task(5)
    def send_job(self):
        """Submit a job without waiting for the publish."""
        with self.client.post(
            "/send",
            json=random_payload(),
            name="/send [POST]",
            catch_response=True,
        ) as response:
            if response.status_code != 202:
                response.failure(f"Send not accepted: {response.status_code}")

    @task(1)
    def health_check(self):
        """Check API health."""
        self.client.get("/health", name="/health [GET]")


class BurstSubmissionUser(HttpUser):
    """
    User that submits jobs in bursts to exercise channel flow control
    and, when enabled, rate limiting.
    """

    wait_time = between(5, 10)

    @task
    def burst_submit(self):
        """Submit a burst of fire-and-forget jobs."""
        burst_size = random.randint(50, 200)

        for _ in range(burst_size):
            self.client.post(
                "/send",
                json=random_payload(),
                name="/send [POST] (burst)",
            )
