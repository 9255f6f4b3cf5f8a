"""
Locust Load Test Suite

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Many redeemers, one channel
  locust -f locustfile.py --tags spread       # Many channels in parallel
  locust -f locustfile.py --tags edge         # Bad input
  locust -f locustfile.py                     # All tests

Point EMOTE_PROVIDER_URL at a staging provider (or a stub) first: these
scenarios really install and evict emotes.
"""

import random
import string
from locust import HttpUser, task, between, tag, events

CONCURRENCY_CHANNEL = "loadtest-hot"
SPREAD_CHANNELS = [f"loadtest-{i}" for i in range(50)]
EMOTE_IDS = [f"60ae{i:020x}" for i in range(200)]


def random_user():
    name = "u_" + "".join(random.choices(string.ascii_lowercase, k=8))
    return str(random.randint(10000, 99999)), name


def redemption(channel_id: str, emote_id: str, slots: int = 3) -> dict:
    user_id, user_name = random_user()
    return {
        "channel_id": channel_id,
        "channel_login": channel_id,
        "user_id": user_id,
        "user_name": user_name,
        "redemption_id": "".join(random.choices(string.hexdigits, k=16)),
        "emote_id": emote_id,
        "slots": slots,
        "update_status": False,
    }


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "="*60)
    print(f"Hot channel: {CONCURRENCY_CHANNEL}, spread over {len(SPREAD_CHANNELS)} channels")
    print("="*60)


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - 100 redeemers -> one channel

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify on the provider that the channel never holds more
    emotes than its slots, and in the ledger:
      SELECT change_type, COUNT(*) FROM emote_ledger WHERE channel_id = 'loadtest-hot' GROUP BY 1;
    Every removed_* row must be followed by an add row (no partial commits).
    """
    wait_time = between(0, 0.1)

    @tag("concurrency")
    @task
    def redeem_hot_channel(self):
        with self.client.post("/api/v1/redemptions/",
            json=redemption(CONCURRENCY_CHANNEL, random.choice(EMOTE_IDS)),
            name="/api/v1/redemptions/ [hot]",
            catch_response=True
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Unexpected: {resp.status_code}")
            elif resp.json()["error"] == "PartialCommit":
                resp.failure("partial commit")
            else:
                resp.success()  # rejections (duplicate emote) are expected


class SpreadUser(HttpUser):
    """
    TEST 2: Cross-channel parallelism

    Run: locust -f locustfile.py --tags spread -u 100 -r 20 --run-time 60s

    Latency should stay flat as channels are added: channels do not share locks.
    """
    wait_time = between(0.1, 0.5)

    @tag("spread")
    @task(10)
    def redeem_any_channel(self):
        self.client.post("/api/v1/redemptions/",
            json=redemption(random.choice(SPREAD_CHANNELS), random.choice(EMOTE_IDS)),
            name="/api/v1/redemptions/ [spread]")

    @tag("spread")
    @task(3)
    def read_history(self):
        self.client.get(f"/api/v1/channels/{random.choice(SPREAD_CHANNELS)}/history",
            name="/api/v1/channels/{id}/history")

    @tag("spread")
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

    @tag("edge")
    @task
    def no_emote_reference(self):
        body = redemption(CONCURRENCY_CHANNEL, "x")
        del body["emote_id"]
        with self.client.post("/api/v1/redemptions/", json=body, catch_response=True) as resp:
            if resp.status_code == 422:
                resp.success()
            else:
                resp.failure(f"Expected 422, got {resp.status_code}")

    @tag("edge")
    @task
    def unparsable_link(self):
        body = redemption(CONCURRENCY_CHANNEL, "x")
        del body["emote_id"]
        body["user_input"] = "please add pepe"
        with self.client.post("/api/v1/redemptions/", json=body, catch_response=True) as resp:
            if resp.status_code == 200 and resp.json()["state"] == "rejected":
                resp.success()
            else:
                resp.failure(f"Expected rejection, got {resp.status_code}")

    @tag("edge")
    @task
    def zero_slots(self):
        with self.client.post("/api/v1/redemptions/",
            json=redemption(CONCURRENCY_CHANNEL, random.choice(EMOTE_IDS), slots=0),
            catch_response=True
        ) as resp:
            if resp.status_code == 422:
                resp.success()
            else:
                resp.failure(f"Expected 422, got {resp.status_code}")

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post("/api/v1/redemptions/",
            data="not json at all",
            catch_response=True
        ) as resp:
            if resp.status_code in [400, 422]:
                resp.success()
            else:
                resp.failure(f"Expected 400/422, got {resp.status_code}")
