"""
Probe a running agent over HTTP.

Usage:
    python scripts/check_agent.py --base-url http://127.0.0.1:5273 --master-key <key>
"""
import argparse
import json
import os
import sys
from typing import Any, Optional

import requests


class AgentCheckError(RuntimeError):
    pass


def req_json(base_url: str, path: str, master_key: Optional[str] = None) -> Any:
    url = f"{base_url.rstrip('/')}{path}"
    headers = {"X-Master-Key": master_key} if master_key else {}
    try:
        response = requests.get(url, headers=headers, timeout=10)
    except requests.exceptions.RequestException as exc:
        raise AgentCheckError(f"GET {path} failed: {exc}") from exc

    if response.status_code != 200:
        raise AgentCheckError(f"GET {path} failed with HTTP {response.status_code}: {response.text[:300]}")

    try:
        return response.json()
    except ValueError as exc:
        raise AgentCheckError(f"GET {path} returned non-JSON body: {response.text[:300]}") from exc


def run_checks(base_url: str, master_key: Optional[str]) -> dict[str, Any]:
    report: dict[str, Any] = {"base_url": base_url, "checks": []}

    health = req_json(base_url, "/health")
    report["checks"].append({"name": "health", "status": health["status"]})
    if health.get("insecure_master_key"):
        report["checks"].append({"name": "master_key", "status": "WARNING: default master key in use"})

    if master_key:
        report["stats"] = req_json(base_url, "/stats", master_key)
        apps = req_json(base_url, "/apps", master_key)
        report["apps"] = [app["id"] for app in apps]
        report["checks"].append({"name": "apps", "status": f"{len(apps)} installed"})

    return report


def main() -> None:
    parser = argparse.ArgumentParser(description="Check a running SentryX agent")
    parser.add_argument("--base-url", default=os.getenv("SENTRYX_BASE_URL", "http://127.0.0.1:5273"))
    parser.add_argument("--master-key", default=os.getenv("SENTRYX_MASTER_KEY"))
    args = parser.parse_args()

    try:
        report = run_checks(args.base_url, args.master_key)
    except AgentCheckError as exc:
        print(f"❌ {exc}")
        sys.exit(1)

    print(json.dumps(report, indent=2))


if __name__ == "__main__":
    main()
