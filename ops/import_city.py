from __future__ import annotations

import argparse
import json
import os
import sys
from typing import Any
import urllib.request
import urllib.error


DEFAULT_BASE_URL = os.getenv("HUB_BASE_URL", "http://localhost:8000")
DEFAULT_ADMIN_KEY = os.getenv("INTERNAL_ADMIN_KEY", "")

# a synchronous import of a large city can run for a long time
DEFAULT_TIMEOUT_SECONDS = 3600

CITY_PRESETS: dict[str, dict[str, Any]] = {
    "pune": {
        "city_name": "Pune",
        "pincode_ranges": [
            {"start": 411001, "end": 411062},
            {"start": 412101, "end": 412115},
            {"start": 410501, "end": 410510},
            {"start": 412201, "end": 412216},
        ],
        "center_coords": [18.5204, 73.8567],
    },
    "mumbai": {
        "city_name": "Mumbai",
        "pincode_ranges": [
            {"start": 400001, "end": 400104},
            {"start": 421001, "end": 421306},
        ],
        "center_coords": [19.076, 72.8777],
    },
}


def http_post(url: str, payload: dict[str, Any], admin_key: str, operator: str | None) -> dict[str, Any]:
    data = json.dumps(payload).encode("utf-8")
    headers = {
        "Content-Type": "application/json",
        "X-Internal-Admin-Key": admin_key,
    }
    if operator:
        headers["X-Operator-Id"] = operator
    req = urllib.request.Request(url=url, data=data, method="POST", headers=headers)
    try:
        with urllib.request.urlopen(req, timeout=DEFAULT_TIMEOUT_SECONDS) as resp:
            raw = resp.read().decode("utf-8")
            return json.loads(raw) if raw else {}
    except urllib.error.HTTPError as e:
        body = e.read().decode("utf-8", errors="replace")
        print(f"HTTP {e.code} {e.reason} for {url}", file=sys.stderr)
        if body:
            print(body, file=sys.stderr)
        return {"error": {"status": e.code, "reason": e.reason, "body": body}}
    except urllib.error.URLError as e:
        print(f"Network error for {url}: {e}", file=sys.stderr)
        return {"error": {"reason": str(e)}}


def _parse_range(raw: str) -> dict[str, int]:
    start, sep, end = raw.partition("-")
    if not sep:
        raise argparse.ArgumentTypeError(f"expected START-END, got {raw!r}")
    try:
        return {"start": int(start), "end": int(end)}
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected numeric pincodes, got {raw!r}")


def build_payload(args: argparse.Namespace) -> dict[str, Any] | None:
    if args.preset:
        payload = dict(CITY_PRESETS[args.preset])
    else:
        payload = {}

    if args.city:
        payload["city_name"] = args.city
    if args.range:
        payload["pincode_ranges"] = args.range
    if args.center:
        payload["center_coords"] = args.center

    if not all(payload.get(k) for k in ("city_name", "pincode_ranges", "center_coords")):
        return None
    return payload


def main() -> int:
    p = argparse.ArgumentParser(description="Import a city's locality hierarchy from the postal index.")
    p.add_argument("--preset", choices=sorted(CITY_PRESETS), help="known city with its pincode ranges")
    p.add_argument("--city", help="city name (overrides the preset)")
    p.add_argument("--range", action="append", type=_parse_range, help="pincode range START-END; repeatable")
    p.add_argument("--center", nargs=2, type=float, metavar=("LAT", "LNG"))
    p.add_argument("--base-url", default=DEFAULT_BASE_URL)
    p.add_argument("--admin-key", default=DEFAULT_ADMIN_KEY)
    p.add_argument("--operator", help="recorded as imported_by")
    p.add_argument("--sync", action="store_true", help="run the import in the API process and wait for it")
    args = p.parse_args()

    if not args.admin_key:
        print("Missing INTERNAL_ADMIN_KEY (env) or --admin-key", file=sys.stderr)
        return 2

    payload = build_payload(args)
    if payload is None:
        print("Need --preset, or --city with --center and at least one --range", file=sys.stderr)
        return 2

    base_url = args.base_url.rstrip("/")
    suffix = "" if args.sync else ":enqueue"
    endpoint = f"{base_url}/v1/admin/locations/import{suffix}"

    resp = http_post(endpoint, payload, args.admin_key, args.operator)
    print(json.dumps(resp, indent=2, ensure_ascii=False))
    return 0 if "error" not in resp else 1

if __name__ == "__main__":
    raise SystemExit(main())
