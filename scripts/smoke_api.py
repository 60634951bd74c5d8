#!/usr/bin/env python3
"""
Smoke test for a running Video Relay API.

Walks the happy path against a live server: health, auth rejection,
creation, status, listing, a simulated provider callback and deletion.
The simulated callback points at a URL that will not download, so the
task ends in ``success`` with a soft download error.

Usage:
    VIDEO_RELAY_URL=http://localhost:8787 APP_TOKEN=... python scripts/smoke_api.py
"""

import json
import os
import sys
import time
from typing import Optional

import requests

BASE_URL = os.environ.get("VIDEO_RELAY_URL", "http://localhost:8787").rstrip("/")
API_BASE = f"{BASE_URL}/api"
APP_TOKEN = os.environ.get("APP_TOKEN", "")
HEADERS = {"X-APP-TOKEN": APP_TOKEN}

TEST_JOB = {
    "mode": "t2v",
    "prompt": "A paper boat drifting down a rainy street, cinematic",
    "duration": 10,
    "aspect_ratio": "16:9",
}


class Colors:
    GREEN = '\033[92m'
    RED = '\033[91m'
    YELLOW = '\033[93m'
    BLUE = '\033[94m'
    END = '\033[0m'


def print_step(name: str):
    print(f"\n{Colors.BLUE}=== {name} ==={Colors.END}")


def print_success(msg: str):
    print(f"{Colors.GREEN}✓ {msg}{Colors.END}")


def print_error(msg: str):
    print(f"{Colors.RED}✗ {msg}{Colors.END}")


def print_info(msg: str):
    print(f"{Colors.YELLOW}ℹ {msg}{Colors.END}")


def check_health() -> bool:
    print_step("Health Checks")
    try:
        r = requests.get(f"{BASE_URL}/health", timeout=10)
        assert r.status_code == 200
        data = r.json()
        assert data["status"] == "healthy"
        print_success("GET /health")
        print_info(f"Store: {data.get('store', 'unknown')}")
    except Exception as e:
        print_error(f"GET /health - {e}")
        return False
    return True


def check_auth() -> bool:
    print_step("Auth")
    try:
        r = requests.get(f"{API_BASE}/video/list", headers={"X-APP-TOKEN": "definitely-wrong"}, timeout=10)
        assert r.status_code == 401, r.status_code
        print_success("Wrong X-APP-TOKEN rejected")
        r = requests.get(f"{API_BASE}/video/list", headers=HEADERS, timeout=10)
        assert r.status_code == 200, r.text
        print_success("Configured X-APP-TOKEN accepted")
    except Exception as e:
        print_error(f"Auth - {e}")
        return False
    return True


def check_create() -> Optional[str]:
    print_step("Create")
    try:
        r = requests.post(f"{API_BASE}/video/create", json=TEST_JOB, headers=HEADERS, timeout=60)
        if r.status_code == 502:
            print_error(f"Provider rejected the task: {r.json().get('detail')}")
            return None
        assert r.status_code == 200, r.text
        task_id = r.json()["task_id"]
        print_success(f"POST /video/create - {task_id}")
    except Exception as e:
        print_error(f"POST /video/create - {e}")
        return None

    try:
        r = requests.post(
            f"{API_BASE}/video/create", json={**TEST_JOB, "aspect_ratio": "4:3"}, headers=HEADERS, timeout=10
        )
        assert r.status_code == 400, r.status_code
        print_success(f"Invalid aspect ratio rejected: {r.json()['detail']}")
    except Exception as e:
        print_error(f"Validation - {e}")

    return task_id


def check_status_and_list(task_id: str) -> bool:
    print_step("Status / List")
    try:
        r = requests.get(f"{API_BASE}/video/status", params={"task_id": task_id}, headers=HEADERS, timeout=10)
        assert r.status_code == 200, r.text
        print_success(f"GET /video/status - {r.json()['status']} ({r.json()['progress']}%)")

        r = requests.get(f"{API_BASE}/video/list", params={"limit": 5}, headers=HEADERS, timeout=10)
        assert r.status_code == 200, r.text
        ids = [t["localTaskId"] for t in r.json()["tasks"]]
        assert task_id in ids
        print_success(f"GET /video/list - {len(ids)} recent tasks")
    except Exception as e:
        print_error(f"Status / List - {e}")
        return False
    return True


def check_callback(task_id: str, provider_task_id: Optional[str]) -> bool:
    print_step("Callback")
    if not provider_task_id:
        print_info("PROVIDER_TASK_ID not set; sending an unknown-task callback only")
        provider_task_id = "smoke-unknown"

    event = {
        "code": 200,
        "data": {
            "taskId": provider_task_id,
            "state": "success",
            "resultJson": json.dumps({"resultUrls": [f"{BASE_URL}/does-not-exist.mp4"]}),
        },
    }
    try:
        r = requests.post(f"{API_BASE}/callback", json=event, timeout=10)
        assert r.status_code == 200 and r.json() == {"ok": True}, r.text
        print_success("POST /callback acknowledged")
        time.sleep(1)
        r = requests.get(f"{API_BASE}/video/status", params={"task_id": task_id}, headers=HEADERS, timeout=10)
        print_info(f"Status after callback: {r.json()}")
    except Exception as e:
        print_error(f"POST /callback - {e}")
        return False
    return True


def check_delete(task_id: str) -> bool:
    print_step("Delete")
    try:
        r = requests.delete(f"{API_BASE}/tasks/{task_id}", headers=HEADERS, timeout=10)
        assert r.status_code == 200, r.text
        print_success(f"DELETE /tasks/{task_id}")
        r = requests.get(f"{API_BASE}/video/status", params={"task_id": task_id}, headers=HEADERS, timeout=10)
        assert r.status_code == 404, r.status_code
        print_success("Deleted task no longer resolves")
    except Exception as e:
        print_error(f"DELETE /tasks - {e}")
        return False
    return True


def main():
    print(f"\n{Colors.BLUE}{'='*60}")
    print("Video Relay API - Smoke Test")
    print(f"{'='*60}{Colors.END}\n")

    print_info(f"Testing against: {BASE_URL}")
    if not APP_TOKEN:
        print_error("APP_TOKEN is not set; every first-party call will be rejected.")
        sys.exit(1)

    if not check_health():
        print_error("\nHealth check failed. Is the API running?")
        sys.exit(1)

    if not check_auth():
        sys.exit(1)

    task_id = check_create()
    if not task_id:
        print_error("\nCreation failed. Cannot continue.")
        sys.exit(1)

    check_status_and_list(task_id)
    check_callback(task_id, os.environ.get("PROVIDER_TASK_ID"))
    check_delete(task_id)

    print(f"\n{Colors.GREEN}{'='*60}")
    print("Smoke test completed!")
    print(f"{'='*60}{Colors.END}\n")


if __name__ == "__main__":
    main()
