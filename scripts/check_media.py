#!/usr/bin/env python3
"""
Smoke checks for a running media service.

Usage: python scripts/check_media.py [base_url] [sample_photo_path]
"""

import json
import sys
import time
from typing import Any, Callable, Dict, List, Optional

import requests

IMMUTABLE_MARKER = "immutable"


class MediaChecker:
    """Runs HTTP checks against the photo endpoint and reports PASS/FAIL."""

    def __init__(self, base_url: str = "http://localhost:8000", sample_photo: Optional[str] = None):
        self.base_url = base_url.rstrip("/")
        self.sample_photo = sample_photo

    def check_unsupported_format(self) -> Dict[str, Any]:
        """Unknown extensions are rejected with an RFC 7807 body."""
        response = requests.get(f"{self.base_url}/api/photos/sample.bmp", timeout=5)
        body = response.json() if response.content else {}
        passed = response.status_code == 400 and body.get("code") == "unsupported_media_type"
        return {
            "check": "unsupported_format",
            "status": "PASS" if passed else "FAIL",
            "details": {
                "status_code": response.status_code,
                "has_correlation_id": "correlation_id" in body,
            },
        }

    def check_traversal_rejected(self) -> Dict[str, Any]:
        """Escaping the images directory yields 400 whatever the extension."""
        # requests turns %2E back into a dot, so the encoded URL is set after preparation.
        session = requests.Session()
        prepared = session.prepare_request(requests.Request("GET", f"{self.base_url}/api/photos/"))
        prepared.url = f"{self.base_url}/api/photos/%2E%2E/secret.jpg"
        response = session.send(prepared, timeout=5)
        return {
            "check": "traversal_rejected",
            "status": "PASS" if response.status_code == 400 else "FAIL",
            "details": {"status_code": response.status_code},
        }

    def check_cache_headers(self) -> Dict[str, Any]:
        """A derived photo is served with an immutable Cache-Control."""
        if not self.sample_photo:
            return {"check": "cache_headers", "status": "SKIP", "details": {}}
        url = f"{self.base_url}/api/photos/{self.sample_photo}"
        first = requests.get(url, params={"w": 600, "v": "check"}, timeout=30)
        second = requests.get(url, params={"w": 600, "v": "check"}, timeout=30)
        cache_control = first.headers.get("Cache-Control", "")
        passed = (
            first.status_code == 200
            and IMMUTABLE_MARKER in cache_control
            and second.headers.get("X-Media-Cache") == "hit"
            and first.content == second.content
        )
        return {
            "check": "cache_headers",
            "status": "PASS" if passed else "FAIL",
            "details": {
                "status_code": first.status_code,
                "content_type": first.headers.get("Content-Type", ""),
                "cache_control": cache_control,
                "second_request": second.headers.get("X-Media-Cache"),
            },
        }

    def check_health_latency(self, threshold_ms: float = 500.0) -> Dict[str, Any]:
        started = time.perf_counter()
        response = requests.get(f"{self.base_url}/health", timeout=5)
        elapsed_ms = (time.perf_counter() - started) * 1000
        passed = response.status_code == 200 and elapsed_ms < threshold_ms
        return {
            "check": "health_latency",
            "status": "PASS" if passed else "FAIL",
            "details": {"elapsed_ms": round(elapsed_ms, 1), "threshold_ms": threshold_ms},
        }

    def run_all_checks(self) -> Dict[str, Any]:
        checks: List[Callable[[], Dict[str, Any]]] = [
            self.check_unsupported_format,
            self.check_traversal_rejected,
            self.check_cache_headers,
            self.check_health_latency,
        ]
        results = []
        for check in checks:
            try:
                result = check()
            except requests.RequestException as exc:
                result = {"check": check.__name__, "status": "ERROR", "details": {"error": str(exc)}}
            results.append(result)
            print(f"{result['status']:>5}  {result['check']}")

        return {
            "total_checks": len(results),
            "failed": sum(1 for r in results if r["status"] == "FAIL"),
            "errors": sum(1 for r in results if r["status"] == "ERROR"),
            "results": results,
        }


def main():
    base_url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"
    sample_photo = sys.argv[2] if len(sys.argv) > 2 else None
    summary = MediaChecker(base_url, sample_photo).run_all_checks()
    print(json.dumps(summary, indent=2))
    sys.exit(1 if summary["failed"] or summary["errors"] else 0)


if __name__ == "__main__":
    main()
