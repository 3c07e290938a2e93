#!/usr/bin/env python3
"""
LifeSignal Relay - Health Check Script
Checks a running relay through its control surface.

This script checks:
1. HTTP process liveness (/health)
2. Relay running state and ledger health (/status)
3. Failed reconciliations recorded in the journal (/events?status=error)
"""

import argparse
import sys
import time
from typing import Dict, List, Optional

import httpx


class HealthChecker:
    """Health checker for a running LifeSignal relay."""

    def __init__(self, api_url: str = "http://127.0.0.1:3000", timeout: float = 5.0):
        self.api_url = api_url.rstrip("/")
        self.client = httpx.Client(base_url=self.api_url, timeout=timeout)
        self.results: List[Dict] = []

    def log_result(self, component: str, status: str, message: str, details: Optional[Dict] = None):
        """Log a health check result."""
        result = {
            "component": component,
            "status": status,  # "pass", "fail", "warn"
            "message": message,
            "details": details or {},
            "timestamp": time.time(),
        }
        self.results.append(result)

        status_emoji = {"pass": "✅", "fail": "❌", "warn": "⚠️"}
        print(f"{status_emoji.get(status, '❓')} {component}: {message}")

        if details:
            for key, value in details.items():
                print(f"   {key}: {value}")

    def check_liveness(self) -> bool:
        try:
            response = self.client.get("/health")
        except httpx.HTTPError as e:
            self.log_result("HTTP", "fail", f"Cannot reach {self.api_url}: {e}")
            return False
        if response.status_code != 200:
            self.log_result("HTTP", "fail", f"/health returned {response.status_code}")
            return False
        self.log_result("HTTP", "pass", "Control surface is up", {"version": response.json().get("version")})
        return True

    def check_status(self) -> bool:
        response = self.client.get("/status")
        if response.status_code != 200:
            self.log_result("Relay", "fail", f"/status returned {response.status_code}")
            return False

        status = response.json()
        passed = True
        if status["running"]:
            self.log_result("Relay", "pass", "Relay is running", {"uptime_seconds": status.get("uptime_seconds")})
        else:
            self.log_result("Relay", "fail", "Relay is not running")
            passed = False

        for ledger, health in status["health"].items():
            details = {"block": health.get("block_number"), "failures": health.get("consecutive_failures")}
            if health["healthy"]:
                self.log_result(f"Ledger {ledger}", "pass", "Reachable", details)
            else:
                details["error"] = health.get("last_error")
                self.log_result(f"Ledger {ledger}", "fail", "Unreachable", details)
                passed = False

        router = status["router"]
        self.log_result(
            "Router",
            "warn" if router.get("failed") else "pass",
            f"{router.get('processed', 0)} processed, {router.get('failed', 0)} failed",
            {"stream_errors": router.get("stream_errors", 0), "duplicates": router.get("duplicates", 0)},
        )
        return passed

    def check_failed_events(self) -> bool:
        response = self.client.get("/events", params={"status": "error", "limit": 10})
        if response.status_code != 200:
            self.log_result("Journal", "warn", f"/events returned {response.status_code}")
            return True
        failed = response.json()
        if failed:
            latest = failed[0]
            self.log_result(
                "Journal",
                "warn",
                f"{len(failed)} recent failed reconciliations",
                {"latest": f"{latest['kind']} {latest['owner']}: {latest['error']}"},
            )
        else:
            self.log_result("Journal", "pass", "No failed reconciliations")
        return True

    def run_all_checks(self) -> bool:
        print("🏥 LifeSignal Relay - Health Check")
        print("=" * 50)
        try:
            if not self.check_liveness():
                return False
            passed = self.check_status()
            passed &= self.check_failed_events()
            return passed
        finally:
            self.client.close()


def main() -> int:
    parser = argparse.ArgumentParser(description="Check a running LifeSignal relay")
    parser.add_argument("--url", default="http://127.0.0.1:3000", help="Control surface base URL")
    args = parser.parse_args()

    passed = HealthChecker(args.url).run_all_checks()
    print("=" * 50)
    print("✅ All checks passed" if passed else "❌ Some checks failed")
    return 0 if passed else 1


if __name__ == "__main__":
    sys.exit(main())
