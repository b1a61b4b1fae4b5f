# core/aws_client.py
"""
Centralized AWS client factory.

Credentials and region resolve from explicit values (command-line flags)
first, then settings (which load from .env), then the legacy ACCESS_KEY_ID /
SECRET_ACCESS_KEY / REGION environment variables. When nothing is found the
arguments are left as None so boto3 falls back to the ambient credential
chain (instance profile, task role, ~/.aws).
"""
import os
from typing import Optional

import boto3
from pydantic import BaseModel

from wkhtmltos3.core.config import settings
from wkhtmltos3.core.logger import logger


class AwsCredentials(BaseModel):
    """Resolved credentials; any field may be None for ambient host credentials."""
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    aws_session_token: Optional[str] = None
    region_name: Optional[str] = None

    @property
    def is_explicit(self) -> bool:
        return bool(self.aws_access_key_id and self.aws_secret_access_key)


def resolve_aws_credentials(
    access_key_id: Optional[str] = None,
    secret_access_key: Optional[str] = None,
    region: Optional[str] = None,
) -> AwsCredentials:
    """Resolve credentials: explicit values, then settings, then environment."""
    aws_access_key_id = access_key_id or settings.AWS_ACCESS_KEY_ID or os.getenv('ACCESS_KEY_ID')
    aws_secret_access_key = (
        secret_access_key or settings.AWS_SECRET_ACCESS_KEY or os.getenv('SECRET_ACCESS_KEY')
    )
    region_name = (
        region or settings.AWS_REGION or os.getenv('REGION') or os.getenv('AWS_DEFAULT_REGION')
    )

    # A key without its secret is useless; defer to the ambient chain instead
    if not (aws_access_key_id and aws_secret_access_key):
        aws_access_key_id = None
        aws_secret_access_key = None

    return AwsCredentials(
        aws_access_key_id=aws_access_key_id,
        aws_secret_access_key=aws_secret_access_key,
        aws_session_token=settings.AWS_SESSION_TOKEN if aws_access_key_id else None,
        region_name=region_name,
    )


def get_s3_client(credentials: AwsCredentials):
    """Get S3 client with the resolved credentials."""
    try:
        client = boto3.client("s3", **credentials.model_dump())
        logger.info(
            "S3 client initialized",
            extra={"explicit_credentials": credentials.is_explicit, "region": credentials.region_name}
        )
        return client
    except Exception as e:
        logger.error(f"Failed to initialize S3 client: {str(e)}")
        raise


def get_sqs_client(credentials: AwsCredentials):
    """Get SQS client with the resolved credentials."""
    try:
        client = boto3.client("sqs", **credentials.model_dump())
        logger.info(
            "SQS client initialized",
            extra={"explicit_credentials": credentials.is_explicit, "region": credentials.region_name}
        )
        return client
    except Exception as e:
        logger.error(f"Failed to initialize SQS client: {str(e)}")
        raise


def validate_aws_credentials(credentials: AwsCredentials) -> bool:
    """Warn when no explicit credentials exist; ambient host credentials will be tried."""
    if not credentials.is_explicit:
        logger.warning("No explicit AWS credentials configured; relying on ambient host credentials")
        logger.info("Set --accessKeyId/--secretAccessKey, AWS_ACCESS_KEY_ID/AWS_SECRET_ACCESS_KEY, "
                    "or ACCESS_KEY_ID/SECRET_ACCESS_KEY when running outside of aws")
        return False

    logger.info("AWS credentials found")
    return True
