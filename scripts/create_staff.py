"""
create_staff.py
===============
Bootstrap the Himas staff directory.

A fresh deployment has an empty staff row, so nobody can sign in to the
app until the first account exists. This script registers staff through
the same AppState the app uses, then flushes the directory to Supabase.

Usage:
    python scripts/create_staff.py --name "Dr. Rao" --email rao@himas.com \\
        --mobile 9000000001 --role DOCTOR

    python scripts/create_staff.py --schema-only

The password is read from HIMAS_STAFF_PASSWORD, or prompted for twice.
"""

import argparse
import getpass
import os
import sys
from pathlib import Path
from typing import List, Optional

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from himas_core.config import AppSettings, load_settings  # noqa: E402
from himas_core.data.supabase_client import build_row_store, get_supabase_client  # noqa: E402
from himas_core.errors import HimasError  # noqa: E402
from himas_core.logging import setup_logging  # noqa: E402
from himas_core.models import StaffRole  # noqa: E402
from himas_core.offline import STAFF, LocalCache, SaveStatus  # noqa: E402
from himas_core.state.app_state import AppState  # noqa: E402

PASSWORD_ENV = "HIMAS_STAFF_PASSWORD"


def print_sql_schema(table_name: str = "himas_data") -> None:
    """Print the SQL that creates the replicated row table."""
    print(f"""
-- One row per collection: himas_patients, himas_staff
CREATE TABLE IF NOT EXISTS {table_name} (
    id TEXT PRIMARY KEY,
    payload JSONB NOT NULL DEFAULT '[]'::jsonb,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

-- Deliver row changes to subscribed clients
ALTER PUBLICATION supabase_realtime ADD TABLE {table_name};
""")


def read_password() -> Optional[str]:
    """Password from the environment, else an interactive prompt with confirmation."""
    password = os.getenv(PASSWORD_ENV)
    if password:
        return password

    password = getpass.getpass("Password: ")
    if getpass.getpass("Repeat password: ") != password:
        print("ERROR: Passwords do not match")
        return None
    return password


def build_state(settings: AppSettings) -> AppState:
    """AppState wired like the app's, with an uncached Supabase client."""
    client = get_supabase_client(settings) if settings.is_remote_configured else None
    return AppState(
        build_row_store(settings, client),
        LocalCache(settings.local_db_path),
        debounce_seconds=settings.debounce_seconds,
    )


def main(argv: Optional[List[str]] = None, state: Optional[AppState] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Register a staff member in the Himas staff directory"
    )
    parser.add_argument("--name", help="Display name")
    parser.add_argument("--email", help="Login e-mail (unique, case-insensitive)")
    parser.add_argument("--mobile", help="Mobile number for one-time codes")
    parser.add_argument(
        "--role",
        choices=[role.value for role in StaffRole],
        help="Dashboard the account opens",
    )
    parser.add_argument(
        "--schema-only",
        action="store_true",
        help="Only print the SQL schema, don't register anyone",
    )

    args = parser.parse_args(argv)

    print("=" * 70)
    print("HIMAS STAFF DIRECTORY SETUP")
    print("=" * 70)

    if args.schema_only:
        print("\nSQL Schema (copy and run in Supabase SQL Editor):")
        print_sql_schema()
        return 0

    missing = [flag for flag in ("name", "email", "mobile", "role") if not getattr(args, flag)]
    if missing:
        parser.error(f"missing --{', --'.join(missing)}")

    password = read_password()
    if password is None:
        return 1

    if state is None:
        setup_logging()
        settings = load_settings()
        if not settings.is_remote_configured:
            print(f"NOTE: Supabase is not configured; the account is kept in {settings.local_db_path} only")
        state = build_state(settings)
        state.start()

    try:
        user = state.register_staff(args.name, args.email, args.mobile, args.role, password)
    except HimasError as e:
        print(f"ERROR: {e.message}")
        return 1
    finally:
        state.shutdown()

    if state.engine.status(STAFF) is SaveStatus.ERROR:
        print(f"WARNING: {user.email} saved locally only: {state.engine.state(STAFF).last_error}")
        return 1

    print(f"\nSUCCESS: Registered {user.email} as {user.role.value}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
