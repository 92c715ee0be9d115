from __future__ import annotations

import argparse
import json
import os
import sys

import requests


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def _flag(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Traefik Setup Reconciler CLI")
    p.add_argument("--api", default="http://localhost:8000", help="API base URL")
    p.add_argument("--user", default=os.getenv("TSR_ADMIN_USER", "admin"))
    p.add_argument("--password", default=os.getenv("TSR_ADMIN_PASSWORD", "change-me"))
    sub = p.add_subparsers(dest="cmd", required=True)

    s_ev = sub.add_parser("events", help="Show events")
    s_ev.add_argument("--limit", type=int, default=20)

    s_dom = sub.add_parser("assign-domain", help="Bind the managed application on a public host")
    s_dom.add_argument("--host", required=True)
    s_dom.add_argument("--certificate-type", default="none", choices=["none", "letsencrypt"])
    s_dom.add_argument("--email", default=None, help="Let's Encrypt account email")

    s_h3 = sub.add_parser("http3", help="Enable or disable HTTP/3 on websecure")
    s_h3.add_argument("state", choices=["on", "off"])

    s_dash = sub.add_parser("dashboard", help="Publish or hide the Traefik dashboard port")
    s_dash.add_argument("state", choices=["on", "off"])

    s_env = sub.add_parser("env", help="Show Traefik environment, or replace it from a dotenv file")
    s_env.add_argument("--file", default=None, help="dotenv file to apply; '-' reads stdin")

    s_clean = sub.add_parser("docker-cleanup", help="Schedule (on/off) or run the docker cleanup job")
    s_clean.add_argument("state", choices=["on", "off", "now"])
    s_clean.add_argument("--target", default="all", help="with 'now': all, images, volumes, containers, builder, prune")

    sub.add_parser("reload", help="Restart the Traefik service")

    args = p.parse_args(argv)

    base = args.api.rstrip("/")
    auth = (args.user, args.password)

    if args.cmd == "events":
        r = requests.get(f"{base}/events", params={"limit": args.limit}, auth=auth, timeout=10)
    elif args.cmd == "assign-domain":
        payload = {
            "host": args.host,
            "certificate_type": args.certificate_type,
            "lets_encrypt_email": args.email,
        }
        r = requests.post(f"{base}/settings/assign-domain", json=payload, auth=auth, timeout=30)
    elif args.cmd == "http3":
        payload = {"enable_http3": _flag(args.state)}
        r = requests.post(f"{base}/settings/http3", json=payload, auth=auth, timeout=120)
    elif args.cmd == "dashboard":
        payload = {"enable_dashboard": _flag(args.state)}
        r = requests.post(f"{base}/settings/dashboard", json=payload, auth=auth, timeout=120)
    elif args.cmd == "env":
        if args.file is None:
            r = requests.get(f"{base}/settings/traefik/env", auth=auth, timeout=10)
        else:
            if args.file == "-":
                text = sys.stdin.read()
            else:
                with open(args.file, encoding="utf-8") as f:
                    text = f.read()
            r = requests.put(f"{base}/settings/traefik/env", json={"env": text}, auth=auth, timeout=120)
    elif args.cmd == "docker-cleanup":
        if args.state == "now":
            r = requests.post(f"{base}/settings/docker-cleanup/{args.target}", auth=auth, timeout=600)
        else:
            payload = {"enable": _flag(args.state)}
            r = requests.post(f"{base}/settings/docker-cleanup", json=payload, auth=auth, timeout=10)
    elif args.cmd == "reload":
        r = requests.post(f"{base}/settings/traefik/reload", auth=auth, timeout=120)
    else:
        return 2

    _print(r.json())
    return 0 if r.ok else 1


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
