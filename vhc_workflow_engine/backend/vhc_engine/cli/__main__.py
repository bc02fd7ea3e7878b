# backend/vhc_engine/cli/__main__.py
from __future__ import annotations

import argparse
import json

from vhc_engine.cli.seed_demo import seed_demo
from vhc_engine.db import Base, SessionLocal, engine
from vhc_engine.services.authorization_workflow import Actor, recompute_and_maybe_transition


def _cmd_seed(args: argparse.Namespace) -> dict:
    if args.create_tables:
        Base.metadata.create_all(bind=engine)
    out = seed_demo(
        org_slug=args.org_slug,
        org_name=args.org_name,
        user_email=args.user_email,
        status=args.status,
    )
    return {
        "ok": True,
        "org_slug": out.org_slug,
        "user_email": out.user_email,
        "health_check_id": out.health_check_id,
        "public_token": out.public_token,
        "repair_item_ids": out.repair_item_ids,
    }


def _cmd_recompute(args: argparse.Namespace) -> dict:
    db = SessionLocal()
    try:
        r = recompute_and_maybe_transition(
            db,
            org_id=args.org_id,
            health_check_id=args.health_check_id,
            actor=Actor.system(),
        )
        return {"ok": True, **r.as_dict()}
    finally:
        db.close()


def main(argv: list[str] | None = None) -> dict:
    p = argparse.ArgumentParser(prog="vhc_engine.cli")
    sub = p.add_subparsers(dest="command", required=True)

    s = sub.add_parser("seed-demo", help="create a demo org and a health check awaiting customer response")
    s.add_argument("--org-slug", default="demo")
    s.add_argument("--org-name", default="Demo Motors")
    s.add_argument("--user-email", default="advisor@demo.local")
    s.add_argument("--status", default="opened")
    s.add_argument("--create-tables", action="store_true")
    s.set_defaults(func=_cmd_seed)

    r = sub.add_parser("recompute", help="re-run outcome aggregation for one health check")
    r.add_argument("--org-id", type=int, required=True)
    r.add_argument("--health-check-id", type=int, required=True)
    r.set_defaults(func=_cmd_recompute)

    args = p.parse_args(argv)
    out = args.func(args)
    print(json.dumps(out, default=str))
    return out


if __name__ == "__main__":
    main()
