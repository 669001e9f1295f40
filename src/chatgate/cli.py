"""Command line helpers: an interactive chat shell and a demo data seeder."""

from __future__ import annotations

import argparse
import sys
from uuid import uuid4

import httpx
from sqlmodel import select

from chatgate.core.config import AppSettings
from chatgate.core.db.models import AssistantConfig, Companion, Tenant
from chatgate.core.db.session import create_engine_for_url, init_db, session_scope

DEMO_TENANTS = (
    {
        "slug": "bella-italia",
        "name": "Bella Italia",
        "tenant_type": "restaurant",
        "ai_name": "Sofia",
        "greeting": "Buongiorno! I'm Sofia. Would you like to book a table?",
        "system_prompt": (
            "You are Sofia, the friendly host of Bella Italia. Help guests with "
            "bookings, the menu and opening hours. Keep answers short."
        ),
        "knowledge_base": (
            "Opening hours: Tue-Sun 11:30-22:00, closed Mondays.\n"
            "Signature dishes: margherita, carbonara, tiramisu.\n"
            "Bookings for groups above 8 need a phone call."
        ),
        "companions": (),
    },
    {
        "slug": "sunrise-eldercare",
        "name": "Sunrise Eldercare",
        "tenant_type": "eldercare",
        "ai_name": "Companion",
        "greeting": "Hello dear, how are you feeling today?",
        "system_prompt": (
            "You are a warm, patient companion for older adults. Use short, simple "
            "sentences and never rush the conversation."
        ),
        "knowledge_base": None,
        "companions": (
            {
                "companion_key": "rose",
                "name": "Rose",
                "emoji": "🌹",
                "greeting": "Hello, it's Rose. Shall we have a little chat?",
                "personality": "Gentle and cheerful; loves gardening and old songs.",
                "is_default": True,
            },
            {
                "companion_key": "arthur",
                "name": "Arthur",
                "emoji": "🎩",
                "greeting": "Good day! Arthur here. Fancy a story?",
                "personality": "Calm storyteller with a dry sense of humour.",
                "is_default": False,
            },
        ),
    },
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chatgate-cli",
        description="Utilities for a running (or local) chat gateway.",
    )
    subcommands = parser.add_subparsers(dest="command", required=True)

    chat = subcommands.add_parser("chat", help="Interactive shell against POST /chat.")
    chat.add_argument(
        "--host",
        default="http://localhost:8000",
        help="Base URL of the gateway (default: %(default)s)",
    )
    chat.add_argument("--tenant", required=True, help="Tenant slug to talk to.")
    chat.add_argument("--persona", default=None, help="Optional companion key.")
    chat.add_argument(
        "--session-id",
        default=None,
        help="Session identifier to resume (default: random).",
    )
    chat.add_argument(
        "--timeout",
        type=float,
        default=30.0,
        help="HTTP timeout in seconds (default: %(default)s).",
    )

    seed = subcommands.add_parser("seed", help="Create demo tenants, personas and companions.")
    seed.add_argument(
        "--database-url",
        default=None,
        help="Database URL (default: DATABASE_URL or the Postgres settings).",
    )
    return parser


def run_chat(args: argparse.Namespace) -> int:
    session_id = args.session_id or uuid4().hex
    print(f"chatgate - tenant {args.tenant}, session {session_id}")
    print("Press Ctrl-D to exit.\n")

    with httpx.Client(base_url=args.host, timeout=args.timeout) as client:
        greeting = client.get(
            "/greeting",
            params={"tenantSlug": args.tenant, **({"personaKey": args.persona} if args.persona else {})},
        )
        if greeting.status_code == 200:
            body = greeting.json()
            print(f"{body['aiName']}> {body['greeting']}\n")
            name = body["aiName"]
        else:
            name = "AI"

        while True:
            try:
                message = input("You> ").strip()
            except (EOFError, KeyboardInterrupt):
                print()
                break

            if not message:
                continue

            payload = {
                "tenantSlug": args.tenant,
                "prompt": message,
                "sessionId": session_id,
            }
            if args.persona:
                payload["personaKey"] = args.persona

            response = client.post("/chat", json=payload)
            if response.status_code == 429:
                body = response.json()
                print(f"! {body.get('message') or body.get('error')}\n")
                continue
            if response.status_code != 200:
                print(f"! request failed ({response.status_code}): {response.text}")
                continue

            body = response.json()
            marker = " [blocked]" if body.get("blocked") else ""
            ttft = body.get("metrics", {}).get("timeToFirstTokenMs")
            print(f"{name}{marker}> {body['response']}")
            print(f"  (ttft {ttft} ms, total {response.headers.get('X-Total-Time-Ms')} ms)\n")

    return 0


def run_seed(args: argparse.Namespace) -> int:
    settings = AppSettings.load()
    engine = create_engine_for_url(args.database_url or settings.database_dsn, settings=settings)
    init_db(engine)

    created = 0
    with session_scope(engine) as session:
        for profile in DEMO_TENANTS:
            existing = session.exec(select(Tenant).where(Tenant.slug == profile["slug"])).first()
            if existing is not None:
                print(f"= {profile['slug']} already present")
                continue

            tenant = Tenant(slug=profile["slug"], name=profile["name"], tenant_type=profile["tenant_type"])
            session.add(tenant)
            session.flush()
            session.add(
                AssistantConfig(
                    tenant_id=tenant.id,
                    ai_name=profile["ai_name"],
                    greeting=profile["greeting"],
                    system_prompt=profile["system_prompt"],
                    knowledge_base=profile["knowledge_base"],
                )
            )
            for companion in profile["companions"]:
                session.add(Companion(tenant_id=tenant.id, **companion))
            created += 1
            print(f"+ {profile['slug']}")

    print(f"seeded {created} tenant(s)")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.command == "chat":
        return run_chat(args)
    return run_seed(args)


if __name__ == "__main__":  # pragma: no cover - manual invocation
    sys.exit(main())
