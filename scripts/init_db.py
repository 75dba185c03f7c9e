#!/usr/bin/env python3
"""
Database initialization script that runs migrations and seeds the registry.
This runs automatically when the API container starts up.
"""

import sys
import os
import subprocess

# Add the project root to the Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import tenacity  # noqa: E402
from sqlalchemy import create_engine, text  # noqa: E402
from sqlalchemy.exc import OperationalError  # noqa: E402
from core.dependencies import get_settings, init_settings  # noqa: E402
from db.session import get_session_context  # noqa: E402
from proxies.registry import ServerRegistry  # noqa: E402


@tenacity.retry(
    stop=tenacity.stop_after_attempt(30),
    wait=tenacity.wait_fixed(2),
    retry=tenacity.retry_if_exception_type(OperationalError),
    before_sleep=lambda state: print(
        f"⏳ Database not ready, attempt {state.attempt_number}/30..."
    ),
    reraise=True,
)
def _ping_db(database_url: str) -> None:
    engine = create_engine(database_url)
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    finally:
        engine.dispose()


def wait_for_db():
    """Wait for database to be ready."""
    settings = get_settings()
    try:
        _ping_db(settings.DATABASE_URL)
    except OperationalError as e:
        print(f"❌ Database not ready: {e}")
        return False
    print("✅ Database ready")
    return True


def run_migrations():
    """Run Alembic migrations."""
    try:
        print("🔄 Running database migrations...")
        result = subprocess.run(
            ["alembic", "upgrade", "head"],
            capture_output=True,
            text=True,
        )
        if result.returncode == 0:
            print("✅ Migrations completed successfully")
            return True
        # If migrations failed due to duplicate tables (already applied), treat as success
        if "DuplicateTable" in result.stderr or "already exists" in result.stderr:
            print("⚠️  Migrations already applied (duplicate tables), continuing")
            return True
        print(f"❌ Migration failed: {result.stderr}")
        return False
    except OSError as e:
        print(f"❌ Error running migrations: {e}")
        return False


def seed_registry():
    """Create the default server from legacy options and pin a server."""
    settings = get_settings()
    with get_session_context(settings) as db:
        registry = ServerRegistry.from_settings(db, settings)
        seeded = registry.seed_default(settings)
        if seeded is not None:
            print(f"🌱 Seeded default server {seeded.url} (id={seeded.id})")
        else:
            print(f"✅ Registry already has {registry.count()} server(s)")

        if settings.AUTO_SELECT_SERVER:
            selected = registry.ensure_selection()
            if selected is not None:
                print(f"📌 Selected server: {selected.name} (id={selected.id})")
    return True


def init_database():
    """Initialize database with migrations and seed data."""
    print("🚀 Initializing database...")

    # Ensure settings are initialized so get_settings() works
    init_settings()

    if not wait_for_db():
        print("❌ Database initialization failed - database not ready")
        sys.exit(1)

    if not run_migrations():
        print("❌ Database initialization failed - migration error")
        sys.exit(1)

    if not seed_registry():
        print("❌ Database initialization failed - seeding error")
        sys.exit(1)

    print("🎉 Database initialization completed successfully!")


if __name__ == "__main__":
    init_database()
