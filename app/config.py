import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./booking.db")

# Supabase auth - access tokens are HS256 JWTs signed with the project JWT secret
SUPABASE_JWT_SECRET = os.getenv("SUPABASE_JWT_SECRET")
SUPABASE_JWT_AUDIENCE = os.getenv("SUPABASE_JWT_AUDIENCE", "authenticated")
if not SUPABASE_JWT_SECRET:
    import warnings

    warnings.warn(
        "SUPABASE_JWT_SECRET not set! Bearer tokens cannot be verified", RuntimeWarning, stacklevel=2
    )

# Frontend base URL for redirects
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

# Where company owners are sent when a module is not part of their plan
SUBSCRIPTION_UPGRADE_PATH = os.getenv("SUBSCRIPTION_UPGRADE_PATH", "/company_owner/subscription")

# Redis (rate limiting)
REDIS_URL = os.getenv("REDIS_URL")

# Permissions query endpoint, used by PermissionContext when no loader is given
PERMISSIONS_API_BASE_URL = os.getenv("PERMISSIONS_API_BASE_URL", "http://localhost:8000")
PERMISSIONS_FETCH_TIMEOUT = float(os.getenv("PERMISSIONS_FETCH_TIMEOUT", "5.0"))  # seconds
PERMISSIONS_FETCH_RETRIES = int(os.getenv("PERMISSIONS_FETCH_RETRIES", "2"))
PERMISSIONS_FETCH_BACKOFF = float(os.getenv("PERMISSIONS_FETCH_BACKOFF", "0.5"))  # seconds, doubled per retry

# Per-IP limit on GET /api/permissions/{company_id}
PERMISSIONS_RATE_LIMIT = int(os.getenv("PERMISSIONS_RATE_LIMIT", "120"))
PERMISSIONS_RATE_WINDOW = int(os.getenv("PERMISSIONS_RATE_WINDOW", "60"))  # seconds

# Owner decision: when true, company overrides stay effective on a non-active
# subscription. Off by default - an inactive subscription disables everything.
OVERRIDES_APPLY_WHEN_INACTIVE = os.getenv("OVERRIDES_APPLY_WHEN_INACTIVE", "false").lower() == "true"

# Length of the billing period granted when an admin assigns a plan manually
ADMIN_ASSIGNED_PERIOD_DAYS = int(os.getenv("ADMIN_ASSIGNED_PERIOD_DAYS", "30"))

# Grace period announced to a company when a plan change revokes one of its modules
REVOCATION_WARNING_DAYS = int(os.getenv("REVOCATION_WARNING_DAYS", "7"))
