from __future__ import annotations

import argparse
import json
import os
import sys

import requests


APPS = {
    "registry": ("services.registry.app:app", 8761),
    "hi": ("services.hi.app:app", 8762),
    "ribbon": ("services.ribbon.app:app", 8764),
}


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def _serve(role: str, host: str, port: int | None) -> int:
    import uvicorn

    target, default_port = APPS[role]
    port = port or int(os.getenv("CLB_PORT", default_port))
    # The app factories read their port from the environment.
    os.environ["CLB_PORT"] = str(port)
    uvicorn.run(target, host=host, port=port)
    return 0


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Client-side load balancing demo CLI")
    p.add_argument("--registry", default=os.getenv("CLB_REGISTRY_URL", "http://localhost:8761"), help="Registry base URL")
    sub = p.add_subparsers(dest="cmd", required=True)

    s_serve = sub.add_parser("serve", help="Run one of the services")
    s_serve.add_argument("role", choices=sorted(APPS))
    s_serve.add_argument("--host", default="0.0.0.0")
    s_serve.add_argument("--port", type=int, default=None)

    sub.add_parser("services", help="List registered service names")

    s_inst = sub.add_parser("instances", help="List live instances of a service")
    s_inst.add_argument("service")

    s_ev = sub.add_parser("events", help="Show registry events")
    s_ev.add_argument("--limit", type=int, default=20)

    s_hi = sub.add_parser("hi", help="Call the routing client")
    s_hi.add_argument("--name", required=True)
    s_hi.add_argument("--count", type=int, default=1)
    s_hi.add_argument("--ribbon", default="http://localhost:8764", help="Routing client base URL")

    args = p.parse_args(argv)

    base = args.registry.rstrip("/")

    if args.cmd == "serve":
        return _serve(args.role, args.host, args.port)

    if args.cmd == "services":
        r = requests.get(f"{base}/services", timeout=10)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "instances":
        r = requests.get(f"{base}/services/{args.service}/instances", timeout=10)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "events":
        r = requests.get(f"{base}/events", params={"limit": args.limit}, timeout=10)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "hi":
        ribbon = args.ribbon.rstrip("/")
        failed = False
        for _ in range(max(1, args.count)):
            r = requests.get(f"{ribbon}/hi", params={"name": args.name}, timeout=10)
            if r.ok:
                print(r.text)
            else:
                failed = True
                print(f"HTTP {r.status_code}: {r.text}", file=sys.stderr)
        return 1 if failed else 0

    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
