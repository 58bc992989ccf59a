"""
VA Launch Gateway
=================

Serverless backend for the VA Launch product: a single AWS Lambda behind an
API Gateway HTTP API that ingests Stripe webhooks and authenticated form
submissions, verifies them, and applies ordered, idempotent writes to an S3
bucket that is the system's single source of truth.

Modules under this package:
- handler.py     → Lambda entry point, CORS, deny-by-default routing
- routes/        → one module per route group (webhook, auth, forms, ...)
- accounts.py    → canonical account upserts from payment events
- support.py     → support thread upserts
- directory.py   → VA profile publish + sorted directory index
- sessions.py    → magic-link tokens and signed session cookies
- store.py       → S3 object store with conditional writes
- projection.py  → best-effort task-tracker mirror
- utils/         → logging, secrets, signature verification, receipt gate

Environment variables expected:
  • OBJECT_STORE_BUCKET            - S3 bucket holding all canonical state
  • STRIPE_WEBHOOK_SECRET          - Stripe endpoint signing secret
  • SESSION_SIGNING_SECRET         - HMAC key for session cookies
  • VA_SECRET_NAME                 - Secrets Manager secret filling the two above (optional)
  • CORS_ALLOWED_ORIGINS           - comma-separated origin allowlist
  • LOGIN_REDIRECT_URL             - where /auth/confirm sends the browser
  • LOGIN_CONFIRM_URL              - public URL of /auth/confirm for magic links
  • TASK_TRACKER_TOKEN             - task-tracker API token (optional)
  • TASK_TRACKER_SUPPORT_LIST_ID   - list receiving support threads (optional)
  • TASK_TRACKER_ACCOUNTS_LIST_ID  - list receiving new accounts (optional)
  • LOG_LEVEL                      - Log verbosity (default: INFO)

All handlers in this package are stateless and Lambda-optimized.
"""

__version__ = "1.0.0"
__author__ = "VA Launch Engineering"
__license__ = "MIT"

__all__ = ["__version__", "__author__"]
