import os
import sys
import json
import requests

BASE_URL = os.environ.get("SMOKE_URL") or os.environ.get("DEV_URL", "http://127.0.0.1:5002")
API = f"{BASE_URL.rstrip('/')}/api"
HEADERS = {"X-API-Key": os.environ["API_KEY"]} if os.environ.get("API_KEY") else {}


def get(path: str):
    r = requests.get(f"{API}{path}", headers=HEADERS, timeout=10)
    r.raise_for_status()
    return r


def post(path: str, payload: dict, timeout: int = 40):
    r = requests.post(f"{API}{path}", json=payload, headers=HEADERS, timeout=timeout)
    r.raise_for_status()
    return r


def main():
    print(f"[smoke] Target: {API}")
    print("[smoke] /health:", get("/health").status_code)
    print("[smoke] /version:", get("/version").status_code)

    query = "state criminal appeal dismissed as time barred after delay condonation refused"
    r = post("/query-coach", {"query": query})
    print("[smoke] /query-coach:", r.status_code, r.json().get("readiness"))

    r = post("/search", {"query": query, "max_results": 5})
    body = r.json()
    print("[smoke] /search:", r.status_code, body.get("status"), body.get("stop_reason"))
    print(json.dumps({
        "cases": [c.get("title") for c in body.get("cases", [])],
        "near_miss": [c.get("title") for c in body.get("near_miss", [])],
    }, indent=2)[:600])


if __name__ == "__main__":
    try:
        main()
    except Exception as e:
        print("[smoke] FAILED:", e)
        sys.exit(1)
