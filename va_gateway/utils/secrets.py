import json

import boto3

from va_gateway.utils.logger import get_logger

logger = get_logger("va_gateway.secrets")


def get_secret_json(secret_name: str, region_name: str) -> dict:
    """
    Fetch a JSON secret from AWS Secrets Manager.

    Expects the secret value to be a JSON object, e.g.:

        {
          "session_signing_secret": "...",
          "stripe_webhook_secret": "whsec_...",
          "task_tracker_token": "pk_..."
        }
    """
    logger.info(
        "secrets.fetch",
        extra={"secret_name": secret_name, "region": region_name},
    )

    client = boto3.client("secretsmanager", region_name=region_name)

    resp = client.get_secret_value(SecretId=secret_name)
    secret_str = resp.get("SecretString")

    if not secret_str:
        msg = f"Secret '{secret_name}' has no SecretString payload"
        logger.error(msg)
        raise RuntimeError(msg)

    try:
        data = json.loads(secret_str)
    except json.JSONDecodeError as e:
        logger.error(
            "secrets.invalid_json",
            extra={"secret_name": secret_name, "error": str(e)},
        )
        raise RuntimeError(f"Secret '{secret_name}' is not valid JSON") from e

    if not isinstance(data, dict):
        raise RuntimeError(f"Secret '{secret_name}' must be a JSON object")

    return data
