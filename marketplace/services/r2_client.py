# marketplace/services/r2_client.py
import logging
from functools import lru_cache

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from marketplace.config import settings

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_s3_client():
    return boto3.client(
        "s3",
        endpoint_url=f"https://{settings.r2_account_id}.r2.cloudflarestorage.com",
        aws_access_key_id=settings.r2_access_key_id,
        aws_secret_access_key=settings.r2_secret_access_key,
        region_name="auto",
    )


def upload_to_r2(file, key: str, content_type: str) -> str:
    get_s3_client().upload_fileobj(
        file,
        settings.r2_bucket_name,
        key,
        ExtraArgs={"ContentType": content_type},
    )
    return key


def public_url(key: str) -> str:
    if settings.r2_public_base:
        return f"{settings.r2_public_base.rstrip('/')}/{key}"
    return get_s3_client().generate_presigned_url(
        "get_object",
        Params={"Bucket": settings.r2_bucket_name, "Key": key},
        ExpiresIn=7 * 24 * 3600,
    )


def delete_from_r2(key: str) -> None:
    try:
        get_s3_client().delete_object(Bucket=settings.r2_bucket_name, Key=key)
    except (BotoCoreError, ClientError):
        logger.exception(f"Could not delete {key} from R2")
