"""
Configuration and startup security checks for ResourceHub.

Why: Sessions are signed with a shared secret and the first admin is seeded
from the environment. A deployment that forgets either would be trivially
compromised, so production startup refuses obviously insecure settings while
local development stays permissive.

Permissions: The caller needs no special privileges. The function simply reads
environment variables and raises `SystemExit` on fatal misconfiguration.
"""
from __future__ import annotations

import os

MIN_JWT_SECRET_LENGTH = 32
DEV_ADMIN_EMAIL = "admin@example.com"
DEV_ADMIN_PASSWORD = "admin123"


def _is_prod_like(env: str) -> bool:
    env_l = (env or "").lower()
    return env_l in {"prod", "production", "stage", "staging"}


def current_environment() -> str:
    return (os.getenv("RESOURCEHUB_ENV", "dev") or "dev").strip().lower()


def admin_seed_credentials() -> tuple[str, str]:
    """Return (email, password) for the bootstrap admin.

    Dev falls back to well-known defaults; prod-like environments are
    guarded by `ensure_secure_config_on_startup` before this is used.
    """
    email = (os.getenv("RESOURCEHUB_ADMIN_EMAIL") or "").strip()
    password = os.getenv("RESOURCEHUB_ADMIN_PASSWORD") or ""
    if _is_prod_like(current_environment()):
        return email, password
    return email or DEV_ADMIN_EMAIL, password or DEV_ADMIN_PASSWORD


def ensure_secure_config_on_startup() -> None:
    """Fail fast on insecure production configuration.

    Checks (prod-like environments only):
    - RESOURCEHUB_JWT_SECRET must be set, not a placeholder and long enough.
    - Supabase Service Role key must be set and not a known dummy placeholder.
    - DATABASE_URL must not explicitly disable TLS.
    - Admin seed credentials must be set and differ from the dev defaults.
    """
    if not _is_prod_like(current_environment()):
        return  # dev/test remain permissive

    # 1) Session signing secret
    secret = (os.getenv("RESOURCEHUB_JWT_SECRET") or "").strip()
    if not secret or secret.upper().startswith("CHANGE_ME") or "dev-secret" in secret:
        raise SystemExit(
            "Refusing to start: RESOURCEHUB_JWT_SECRET is unset or a placeholder in production."
        )
    if len(secret) < MIN_JWT_SECRET_LENGTH:
        raise SystemExit(
            f"Refusing to start: RESOURCEHUB_JWT_SECRET must be at least {MIN_JWT_SECRET_LENGTH} characters in production."
        )

    # 2) Supabase Service Role key
    srole = (os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "").strip()
    if not srole or srole.upper() == "DUMMY_DO_NOT_USE":
        raise SystemExit(
            "Refusing to start: SUPABASE_SERVICE_ROLE_KEY is unset or a dummy placeholder in production."
        )

    # 3) Postgres TLS: basic guard to avoid explicit disable
    for key in ("DATABASE_URL", "RESOURCEHUB_DATABASE_URL", "SUPABASE_DB_URL"):
        if "sslmode=disable" in (os.getenv(key) or ""):
            raise SystemExit(
                f"Refusing to start: {key} contains sslmode=disable in production. Use sslmode=require or verify TLS."
            )

    # 4) Admin seed must be explicit
    email = (os.getenv("RESOURCEHUB_ADMIN_EMAIL") or "").strip().lower()
    password = os.getenv("RESOURCEHUB_ADMIN_PASSWORD") or ""
    if not email or not password:
        raise SystemExit(
            "Refusing to start: RESOURCEHUB_ADMIN_EMAIL and RESOURCEHUB_ADMIN_PASSWORD must be set in production."
        )
    if email == DEV_ADMIN_EMAIL or password == DEV_ADMIN_PASSWORD:
        raise SystemExit(
            "Refusing to start: admin seed credentials use development defaults in production."
        )
