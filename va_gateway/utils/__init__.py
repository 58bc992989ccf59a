"""
VA Launch Gateway Utilities
===========================

Shared helper modules:

- logger.py       → structured JSON logging
- secrets.py      → AWS Secrets Manager integration
- signature.py    → Stripe-style webhook signature verification
- idempotency.py  → S3 receipt gate for duplicate-event prevention
"""
