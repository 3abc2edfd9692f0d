"""
Storefront Load Testing with Locust

Seed the target first (roles, shopper/operator accounts, products):
    python -m flask system init
    python -m flask users create --username shopper1 --email shopper1@shop.test --password "TestPass123!" --role customer
    python -m flask users create --username ops1 --email ops1@shop.test --password "TestPass123!" --role operator
    python -m flask products add --name "Masala Tea" --price-cents 24900

Run with:
    locust -f tests/stress/locustfile.py --host http://127.0.0.1:5001

Or headless:
    locust -f tests/stress/locustfile.py --host http://127.0.0.1:5001 \
           --users 10 --spawn-rate 2 --run-time 60s --headless

Pass thresholds:
- p95 response time < 500ms for reads
- p95 response time < 1000ms for writes
- Error rate < 1%
"""

import os
import time
import uuid
import random
from typing import Optional, Dict, List

from locust import HttpUser, task, between, events


# =============================================================================
# CONFIGURATION
# =============================================================================

SHOPPERS = [
    {"username": name, "password": os.environ.get("LOAD_PASSWORD", "TestPass123!")}
    for name in os.environ.get("LOAD_SHOPPERS", "shopper1").split(",")
]
OPERATORS = [
    {"username": name, "password": os.environ.get("LOAD_PASSWORD", "TestPass123!")}
    for name in os.environ.get("LOAD_OPERATORS", "ops1").split(",")
]
PRODUCT_IDS = [int(pid) for pid in os.environ.get("LOAD_PRODUCT_IDS", "1").split(",")]

# 1x1 transparent PNG
PNG_BYTES = bytes.fromhex(
    "89504e470d0a1a0a0000000d4948445200000001000000010806000000"
    "1f15c4890000000d49444154789c6360000002000154a24f5d0000000049454e44ae426082"
)


# =============================================================================
# METRICS TRACKING
# =============================================================================

class MetricsCollector:
    """Collect and report metrics."""

    def __init__(self):
        self.request_counts: Dict[str, int] = {}
        self.error_counts: Dict[str, int] = {}
        self.response_times: Dict[str, List[float]] = {}

    def record(self, name: str, response_time: float, success: bool):
        if name not in self.request_counts:
            self.request_counts[name] = 0
            self.error_counts[name] = 0
            self.response_times[name] = []

        self.request_counts[name] += 1
        if not success:
            self.error_counts[name] += 1
        self.response_times[name].append(response_time)

    def get_summary(self) -> Dict:
        summary = {}
        for name in self.request_counts:
            times = sorted(self.response_times[name])
            count = len(times)
            if count == 0:
                continue

            p95_idx = int(count * 0.95)
            summary[name] = {
                "count": self.request_counts[name],
                "errors": self.error_counts[name],
                "error_rate": self.error_counts[name] / self.request_counts[name] * 100,
                "avg_ms": sum(times) / count,
                "p95_ms": times[p95_idx] if p95_idx < count else times[-1],
            }
        return summary


metrics = MetricsCollector()


# =============================================================================
# USER BEHAVIORS
# =============================================================================

class StorefrontUser(HttpUser):
    """
    Base user that authenticates on start.
    """
    wait_time = between(0.5, 2)
    abstract = True
    accounts: List[Dict] = []

    token: Optional[str] = None

    def on_start(self):
        """Login when user starts."""
        creds = random.choice(self.accounts)
        response = self.client.post(
            "/api/auth/login",
            json={"username": creds["username"], "password": creds["password"]},
            name="auth/login"
        )
        if response.status_code == 200:
            self.token = response.json().get("token")

    def get_headers(self, **extra) -> Dict:
        """Get headers with auth token."""
        headers = dict(extra)
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def timed(self, name: str, ok_statuses, method: str, path: str, **kwargs):
        start = time.time()
        response = getattr(self.client, method)(path, name=name, **kwargs)
        metrics.record(name, (time.time() - start) * 1000, response.status_code in ok_statuses)
        return response


class Shopper(StorefrontUser):
    """
    Customer placing orders.
    Exercises cart snapshot, order creation (with retried submits) and evidence upload.
    """
    weight = 3
    accounts = SHOPPERS

    @task(4)
    def checkout(self):
        """Full checkout: add to cart, place order, prepaid orders also submit evidence."""
        self.timed(
            "cart/add", (201,), "post", "/api/cart/items",
            json={"product_id": random.choice(PRODUCT_IDS), "quantity": random.randint(1, 3)},
            headers=self.get_headers(),
        )

        payment_method = random.choice(["upi", "upi", "cod"])
        checkout_key = uuid.uuid4().hex
        body = {
            "shipping_address": {"line1": "12 MG Road", "city": "Bengaluru"},
            "shipping_pincode": "560001",
            "customer_phone": "9876543210",
            "payment_method": payment_method,
        }
        response = self.timed(
            "orders/create", (201,), "post", "/api/orders",
            json=body, headers=self.get_headers(**{"Idempotency-Key": checkout_key}),
        )
        if response.status_code != 201:
            return
        order_id = response.json()["order"]["id"]

        # Double submit: must return the same order
        retry = self.timed(
            "orders/create-retry", (201,), "post", "/api/orders",
            json=body, headers=self.get_headers(**{"Idempotency-Key": checkout_key}),
        )
        if retry.status_code == 201 and retry.json()["order"]["id"] != order_id:
            metrics.record("orders/idempotency-violation", 0, False)

        if payment_method == "upi":
            self.timed(
                "orders/payment-evidence", (200,), "post", f"/api/orders/{order_id}/payment-evidence",
                data={"transaction_id": f"UPI{random.randint(10**8, 10**9)}"},
                files={"screenshot": ("proof.png", PNG_BYTES, "image/png")},
                headers=self.get_headers(),
            )

    @task(3)
    def list_orders(self):
        self.timed("orders/list", (200,), "get", "/api/orders", headers=self.get_headers())

    @task(1)
    def health_check(self):
        self.timed("system/health", (200,), "get", "/api/health")


class Operator(StorefrontUser):
    """
    Operator verifying prepaid orders and fulfilling the rest.
    """
    weight = 1
    accounts = OPERATORS

    @task(3)
    def verify_pending(self):
        response = self.timed(
            "admin/list-pending", (200,), "get", "/api/admin/orders",
            params={"status": "pending_payment_verification", "limit": 20},
            headers=self.get_headers(),
        )
        if response.status_code != 200:
            return
        pending = [o for o in response.json()["orders"] if o.get("transaction_id")]
        if not pending:
            return

        order = random.choice(pending)
        self.timed("admin/review", (200,), "get", f"/api/admin/orders/{order['id']}", headers=self.get_headers())
        # 409 is expected when two operators race on the same order
        self.timed(
            "admin/confirm", (200, 409), "patch", f"/api/admin/orders/{order['id']}/status",
            json={"status": "confirmed", "notes": "Verified", "expected_version": order["version_id"]},
            headers=self.get_headers(),
        )

    @task(1)
    def stats(self):
        self.timed("admin/stats", (200,), "get", "/api/admin/orders/stats", headers=self.get_headers())


# =============================================================================
# EVENT HANDLERS
# =============================================================================

@events.test_stop.add_listener
def on_test_stop(environment, **kwargs):
    """Print summary when test stops."""
    print("\n" + "=" * 80)
    print("LOAD TEST SUMMARY")
    print("=" * 80)

    summary = metrics.get_summary()

    print(f"\n{'Endpoint':<30} {'Count':>8} {'Errors':>8} {'Err%':>8} {'Avg(ms)':>10} {'P95(ms)':>10}")
    print("-" * 80)

    total_requests = 0
    total_errors = 0
    all_pass = True

    for name, stats in sorted(summary.items()):
        total_requests += stats["count"]
        total_errors += stats["errors"]

        is_write = any(word in name for word in ("create", "evidence", "confirm", "add"))
        p95_threshold = 1000 if is_write else 500
        passed = stats["p95_ms"] < p95_threshold and stats["error_rate"] < 1

        status = "PASS" if passed else "FAIL"
        if not passed:
            all_pass = False

        print(f"{name:<30} {stats['count']:>8} {stats['errors']:>8} {stats['error_rate']:>7.2f}% {stats['avg_ms']:>9.1f} {stats['p95_ms']:>9.1f} [{status}]")

    print("-" * 80)
    print(f"{'TOTAL':<30} {total_requests:>8} {total_errors:>8} {total_errors/max(total_requests,1)*100:>7.2f}%")
    print("=" * 80)

    if all_pass:
        print("\n[PASS] All endpoints within thresholds")
    else:
        print("\n[FAIL] Some endpoints exceeded thresholds")
        print("  - Reads (list/get): P95 < 500ms, Error rate < 1%")
        print("  - Writes (create/evidence/confirm): P95 < 1000ms, Error rate < 1%")

    print("=" * 80)
