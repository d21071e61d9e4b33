#!/usr/bin/env python
"""Seed development database with fixture data.

Seeds a hosted-mode user, one session and a short event log so the session
and event endpoints have something to page through locally.

Constraints:
- Refuses to run in staging or prod (RELAY_ENV check)
- Idempotent via ON CONFLICT DO NOTHING
- Never runs automatically (manual invocation only)

Usage:
    cd python && DATABASE_URL=... python ../scripts/seed_dev.py
"""

import json
import os
import sys
from uuid import UUID

DEV_USER_ID = UUID("00000000-0000-4000-8000-000000000001")
DEV_SESSION_ID = UUID("00000000-0000-4000-8000-0000000000a1")
DEV_EVENT_IDS = [
    UUID("00000000-0000-4000-8000-0000000000e1"),
    UUID("00000000-0000-4000-8000-0000000000e2"),
    UUID("00000000-0000-4000-8000-0000000000e3"),
]


def dev_events() -> list[tuple[UUID, str, dict]]:
    user_msg, assistant_msg, result_msg = DEV_EVENT_IDS
    return [
        (
            user_msg,
            "user",
            {
                "type": "user",
                "uuid": str(user_msg),
                "parent_tool_use_id": None,
                "message": {"role": "user", "content": "List the files in this repo"},
            },
        ),
        (
            assistant_msg,
            "assistant",
            {
                "type": "assistant",
                "uuid": str(assistant_msg),
                "message": {"role": "assistant", "content": [{"type": "text", "text": "Sure."}]},
            },
        ),
        (
            result_msg,
            "result",
            {"type": "result", "uuid": str(result_msg), "subtype": "success"},
        ),
    ]


def main():
    # 1. Environment check (hard fail in staging/prod)
    relay_env = os.getenv("RELAY_ENV", "local")
    if relay_env not in ("local", "test"):
        print(f"ERROR: seed_dev.py refuses to run in RELAY_ENV={relay_env}")
        sys.exit(1)

    # 2. Check DATABASE_URL
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        print("ERROR: DATABASE_URL environment variable must be set")
        sys.exit(1)

    from sqlalchemy import create_engine, text

    from relay.services.ids import uuid_to_session_id

    engine = create_engine(database_url)

    with engine.connect() as conn:
        # 3. Idempotent seeding
        result = conn.execute(
            text("""
                INSERT INTO users (id, provider)
                VALUES (:user_id, 'hosted')
                ON CONFLICT (id) DO NOTHING
                RETURNING id
            """),
            {"user_id": DEV_USER_ID},
        )
        user_created = result.fetchone() is not None

        result = conn.execute(
            text("""
                INSERT INTO sessions (id, user_id, title, status, session_context)
                VALUES (:session_id, :user_id, 'Dev session', 'idle', :context)
                ON CONFLICT (id) DO NOTHING
                RETURNING id
            """),
            {
                "session_id": DEV_SESSION_ID,
                "user_id": DEV_USER_ID,
                "context": json.dumps({"model": "claude-sonnet-4-5", "cwd": ""}),
            },
        )
        session_created = result.fetchone() is not None

        events_created = 0
        for seq, (event_id, event_type, data) in enumerate(dev_events()):
            result = conn.execute(
                text("""
                    INSERT INTO events (id, session_id, type, subtype, data, sequence_num, status)
                    VALUES (:id, :session_id, :type, :subtype, :data, :seq, 'sent')
                    ON CONFLICT (id) DO NOTHING
                    RETURNING id
                """),
                {
                    "id": event_id,
                    "session_id": DEV_SESSION_ID,
                    "type": event_type,
                    "subtype": data.get("subtype"),
                    "data": json.dumps(data),
                    "seq": seq,
                },
            )
            events_created += result.fetchone() is not None

        conn.commit()

    # 4. Report
    db_display = database_url.split("@")[1] if "@" in database_url else database_url
    print(f"Database: {db_display}")
    print(f"RELAY_ENV: {relay_env}")
    print()
    print(f"{'✓ Created' if user_created else '• Exists'}: user {DEV_USER_ID}")
    print(
        f"{'✓ Created' if session_created else '• Exists'}: session "
        f"{uuid_to_session_id(DEV_SESSION_ID)}"
    )
    print(f"✓ Created {events_created} of {len(DEV_EVENT_IDS)} events")
    print()
    print("Note: the seeded user only sees the session when authenticating with")
    print(f"a token whose sub claim is {DEV_USER_ID}.")


if __name__ == "__main__":
    main()
