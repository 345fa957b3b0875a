#!/usr/bin/env python3
"""
Startup script for the sendcore API
- API server (default): python start.py api
- Migrations only:      python start.py migrate
"""
import os
import subprocess
import sys
from urllib.parse import urlparse


def mask_database_url(url: str) -> str:
    try:
        if not url:
            return ""
        p = urlparse(url)
        if p.password:
            return url.replace(p.password, "****")
        return url
    except ValueError:
        return "****"


def run_migrations() -> bool:
    print(f"Running database migrations; DATABASE_URL={mask_database_url(os.environ.get('DATABASE_URL', ''))}")
    try:
        subprocess.run(["alembic", "upgrade", "head"], check=True)
        print("Database migrations completed successfully")
        return True
    except subprocess.CalledProcessError as e:
        print(f"Migration failed: {e}")
        return False


def run_api() -> None:
    port = os.environ.get("PORT", "8000")
    print(f"Starting sendcore API on port {port}")

    # Best-effort: the API can still serve health checks if migrations fail
    if not run_migrations():
        print("Continuing startup without migrations")

    cmd = [
        "uvicorn",
        "sendcore.main:app",
        "--host", "0.0.0.0",
        "--port", str(port),
    ]
    print(f"Running command: {' '.join(cmd)}")
    os.execvp("uvicorn", cmd)


def main():
    role = (sys.argv[1] if len(sys.argv) > 1 else os.environ.get("SERVICE_ROLE", "api")).lower()
    if role == "api":
        run_api()
    elif role == "migrate":
        sys.exit(0 if run_migrations() else 1)
    else:
        print(f"Unknown role '{role}'. Use one of: api, migrate")
        sys.exit(1)


if __name__ == "__main__":
    main()
