# railcam/scripts/trigger_cycle.py
from __future__ import annotations

import json
import os
import urllib.request
from urllib.parse import urlencode


def build_request() -> urllib.request.Request:
    url = os.environ.get("COLLECT_URL", "http://127.0.0.1:8000/admin/collect")
    token = os.environ.get("INTERNAL_TASK_TOKEN", "")
    force = os.environ.get("FORCE", "").strip().lower() in {"1", "true", "yes"}

    if force:
        url = f"{url}{'&' if '?' in url else '?'}{urlencode({'force': 'true'})}"
    req = urllib.request.Request(url, method="POST")
    if token:
        req.add_header("X-Task-Token", token)
    return req


def main() -> int:
    req = build_request()
    with urllib.request.urlopen(req, timeout=120) as resp:
        body = resp.read().decode("utf-8", errors="replace")
        try:
            data = json.loads(body)
        except ValueError:
            print(body)
            return 0
        print(json.dumps(data, ensure_ascii=False, indent=2))
    return 0 if data.get("ok") else 1


if __name__ == "__main__":
    raise SystemExit(main())
