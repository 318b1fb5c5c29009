#!/usr/bin/env python3
"""
Notification Pipeline - actionpipe Demo Application

Run modes:
  python main.py                             # Demo with sample notifications
  python main.py --file notifications.json   # Load from a JSON file
  python main.py --stress --count 100        # Stress test
"""

import argparse
import asyncio
import json
import logging
import random
import sys
import time
from datetime import datetime
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from handlers import AuditTrail, enrich, send_email, send_push, send_sms, validate, wants

from actionpipe import ActionRegister, ExecutionMode

logging.basicConfig(level=logging.INFO, format="%(message)s", stream=sys.stderr)


def create_sample_notifications() -> list[dict]:
    """Create sample notification requests."""
    order_id = random.randint(10000, 99999)
    ts = datetime.now().strftime("%H:%M:%S")

    return [
        {"user_id": "user_001", "channels": ["email", "sms", "push"], "message": f"Order #{order_id} shipped! [{ts}]", "priority": "high"},
        {"user_id": "user_002", "channels": ["email"], "message": f"Weekly digest: {random.randint(1,20)} updates", "priority": "low"},
        {"user_id": "user_003", "channels": ["sms", "push"], "message": f"Security alert at {ts}", "priority": "critical"},
        {"user_id": "user_001", "channels": ["email"], "message": "", "priority": "normal"},
        {"user_id": "user_002", "channels": ["telegram"], "message": "Test", "priority": "normal"},
        {"user_id": "user_003", "channels": ["email"], "message": "No inbox on file", "priority": "normal"},
    ]


def create_stress_notifications(count: int) -> list[dict]:
    """Generate random notifications for stress testing."""
    users = ["user_001", "user_002", "user_003"]
    channels_options = [["email"], ["sms"], ["push"], ["email", "sms"], ["sms", "push"], ["email", "sms", "push"]]
    messages = ["Order update", "Security alert", "Weekly digest", "Payment received"]

    return [
        {
            "user_id": random.choice(users),
            "channels": random.choice(channels_options),
            "message": f"{random.choice(messages)} #{random.randint(1000,9999)}",
            "priority": random.choice(["low", "normal", "high", "critical"]),
        }
        for _ in range(count)
    ]


def load_from_file(filepath: str) -> list[dict]:
    """Load notifications from a JSON file."""
    path = Path(filepath)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {filepath}")
    if path.suffix != ".json":
        raise ValueError(f"Unsupported format: {path.suffix}")

    with open(path) as f:
        data = json.load(f)
    return data if isinstance(data, list) else data.get("notifications", [])


def build_register(audit: AuditTrail) -> ActionRegister:
    """Wire the notify and deliver pipelines."""
    register = ActionRegister(name="notifications")

    async def deliver(payload: dict, controller) -> list[dict]:
        # Fan out to every requested channel at once.
        result = await register.dispatch_with_result("deliver", payload)
        if result.errors:
            raise result.errors[0].error
        return result.results

    register.register("notify", validate, id="validate", priority=100)
    register.register("notify", enrich, id="enrich", priority=90)
    register.register("notify", deliver, id="deliver", priority=50, blocking=True)

    register.set_action_execution_mode("deliver", ExecutionMode.PARALLEL)
    register.register("deliver", send_email, id="email", validation=wants("email"), tags=["smtp"])
    register.register("deliver", send_sms, id="sms", validation=wants("sms"), tags=["gateway"])
    register.register("deliver", send_push, id="push", validation=wants("push"), tags=["gateway"])

    register.on("action:complete", lambda data: data["action"] == "notify" and audit.on_complete(data))
    register.on("action:abort", lambda data: data["action"] == "notify" and audit.on_abort(data))
    register.on("action:error", lambda data: data["action"] == "notify" and audit.on_error(data))
    return register


async def run_pipeline(notifications: list[dict], verbose: bool = True):
    """Run every notification through the pipeline concurrently."""
    audit = AuditTrail()
    register = build_register(audit)

    if verbose:
        print("=" * 60)
        print("NOTIFICATION PIPELINE")
        print("=" * 60)
        print(f"\nProcessing {len(notifications)} notifications...\n")

    start = time.monotonic()
    results = await asyncio.gather(
        *(register.dispatch_with_result("notify", n) for n in notifications)
    )
    elapsed = time.monotonic() - start

    if verbose:
        for n, result in zip(notifications, results):
            if len(notifications) > 20:
                break
            if result.success:
                print(f"  ✓ {n.get('user_id')}: {[r['channel'] for r in result.results[0]]}")
            elif result.aborted:
                print(f"  ✗ {n.get('user_id')}: rejected ({result.abort_reason})")
            else:
                print(f"  ✗ {n.get('user_id')}: failed ({result.errors[0].error})")

        print("\n" + "=" * 60)
        print("RESULTS")
        print("=" * 60)
        print(f"  Delivered: {audit.count('delivered')}")
        print(f"  Rejected: {audit.count('rejected')}")
        print(f"  Failed: {audit.count('failed')}")
        print(f"  Time: {elapsed:.2f}s ({len(notifications)/elapsed:.1f} notifications/sec)")

    return results, audit


def main():
    parser = argparse.ArgumentParser(description="Notification Pipeline Demo")
    parser.add_argument("--file", "-f", type=str, help="Load from JSON file")
    parser.add_argument("--stress", action="store_true", help="Stress test mode")
    parser.add_argument("--count", type=int, default=100, help="Number of notifications for stress test")
    parser.add_argument("--quiet", "-q", action="store_true", help="Minimal output")
    args = parser.parse_args()

    if args.file:
        print(f"Loading from: {args.file}\n")
        notifications = load_from_file(args.file)
    elif args.stress:
        print(f"STRESS TEST: {args.count} notifications\n")
        notifications = create_stress_notifications(args.count)
    else:
        notifications = create_sample_notifications()

    asyncio.run(run_pipeline(notifications, verbose=not args.quiet))


if __name__ == "__main__":
    main()
