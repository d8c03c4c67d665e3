"ResourceHub"
from __future__ import annotations

from contextlib import asynccontextmanager
import logging
import os
import sys as _sys

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from identity_access.authn import authenticate_bearer

try:
    from .auth_utils import bearer_token_from_header
    from . import config as _cfg
    from . import wiring
    from .storage_wiring import wire_supabase_adapter_if_configured as _wire_storage
    from .routes.admin import admin_router
    from .routes.auth import auth_router
    from .routes.student import student_router
except ImportError:
    from auth_utils import bearer_token_from_header  # type: ignore
    import config as _cfg  # type: ignore
    import wiring  # type: ignore
    from storage_wiring import wire_supabase_adapter_if_configured as _wire_storage  # type: ignore
    from routes.admin import admin_router  # type: ignore
    from routes.auth import auth_router  # type: ignore
    from routes.student import student_router  # type: ignore

# Ensure both import styles reference the same module instance.
if __name__ == "main":
    _sys.modules.setdefault("web.main", _sys.modules[__name__])
elif __name__ == "web.main":
    _sys.modules["main"] = _sys.modules[__name__]


def _should_load_dotenv() -> bool:
    """Decide if we should load a local .env file.

    - Never load under pytest to avoid contaminating test env.
    - Allow explicit opt-out via RESOURCEHUB_ENABLE_DOTENV (default true
      outside pytest).
    """
    if "pytest" in _sys.modules or os.getenv("PYTEST_CURRENT_TEST"):
        return False
    flag = (os.getenv("RESOURCEHUB_ENABLE_DOTENV", "true") or "").strip().lower()
    return flag in ("1", "true", "yes")


if _should_load_dotenv():
    from dotenv import load_dotenv

    load_dotenv()

# Fail fast on insecure production configuration.
_cfg.ensure_secure_config_on_startup()


# --- App & Settings Setup -------------------------------------------------------

class AuthSettings:
    def __init__(self) -> None:
        self._env_override: str | None = None

    @property
    def environment(self) -> str:
        if self._env_override is not None:
            return self._env_override
        return _cfg.current_environment()

    def override_environment(self, env: str | None) -> None:
        """Override environment for tests (e.g., "prod"), or reset with None."""
        self._env_override = env


logger = logging.getLogger("resourcehub.web")
SETTINGS = AuthSettings()


def seed_admin_from_env() -> bool:
    """Create the bootstrap admin when no admin exists yet."""
    email, password = _cfg.admin_seed_credentials()
    if not email or not password:
        logger.warning("No admin seed credentials configured; skipping admin bootstrap")
        return False
    created = wiring.credential_store().ensure_admin(email, password)
    if created:
        logger.info("Seeded bootstrap admin account")
    return created


@asynccontextmanager
async def lifespan(_app: FastAPI):
    seed_admin_from_env()
    yield


app = FastAPI(
    title="ResourceHub",
    description="Role-based distribution of files to student batches",
    version="0.1.0",
    lifespan=lifespan,
)

# Call wiring early so routes receive the adapter before first request handling.
# If Supabase is still starting, routes retry lazily on first use.
_wire_storage()


# --- Auth Middleware ------------------------------------------------------------

_PUBLIC_PATHS = {"/health", "/admin/login", "/student/login", "/docs", "/openapi.json"}


def _is_public_path(path: str) -> bool:
    return path in _PUBLIC_PATHS


def _unauthenticated() -> JSONResponse:
    return JSONResponse({"error": "unauthenticated"}, status_code=401, headers={"Cache-Control": "private, no-store"})


@app.middleware("http")
async def auth_enforcement(request: Request, call_next):
    """Resolve the bearer token into `request.state.user` or answer 401.

    A token must carry a valid signature, be unexpired and, for students, still
    be the live token of its device. Revoked and evicted tokens fail here
    even though their signature is valid.
    """
    if request.method == "OPTIONS" or _is_public_path(request.url.path):
        return await call_next(request)

    token = bearer_token_from_header(request.headers.get("authorization"))
    principal = None
    if token:
        try:
            principal = authenticate_bearer(token, issuer=wiring.token_issuer(), registry=wiring.device_registry())
        except Exception as exc:
            logger.warning("Session lookup failed: %s", exc.__class__.__name__)
    if principal is None:
        return _unauthenticated()

    # Expose minimal, read-only user context for downstream handlers.
    request.state.user = {
        "sub": principal.sub,
        "role": principal.role,
        "roles": [principal.role],
        "device_id": principal.device_id,
    }
    return await call_next(request)


# --- Security Headers Middleware ----------------------------------------------

@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Frame-Options", "SAMEORIGIN")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    if SETTINGS.environment == "prod":
        response.headers.setdefault("Cross-Origin-Opener-Policy", "same-origin")
    response.headers.setdefault("Permissions-Policy", "geolocation=(), microphone=(), camera=()")
    # HSTS: always on (dev = prod)
    response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
    return response


# Added last so it wraps the auth middleware and answers preflights first.
_cors_origins = [o.strip() for o in (os.getenv("CORS_ALLOW_ORIGINS") or "").split(",") if o.strip()]
if _cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )


# --- Error Handling -------------------------------------------------------------

@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    # Contract uses 400 for every input error, not FastAPI's default 422.
    return JSONResponse(
        {"error": "bad_request", "detail": "invalid_input"},
        status_code=400,
        headers={"Cache-Control": "private, no-store"},
    )


# --- Routers --------------------------------------------------------------------

app.include_router(auth_router)
app.include_router(admin_router)
app.include_router(student_router)


@app.get("/health")
async def health_check():
    # Minimal health endpoint used by orchestrators and tests.
    return JSONResponse({"status": "healthy"}, headers={"Cache-Control": "private, no-store"})
