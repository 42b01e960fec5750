"""
Cloudflare R2 (S3-compatible) object storage: client factory and final-video upload.
"""

from pathlib import Path

import boto3

import config


def get_r2_client():
    """S3 client pointed at the R2 endpoint. Raises ValueError when R2 is not configured."""
    if not (config.R2_ENDPOINT and config.R2_ACCESS_KEY_ID and config.R2_SECRET_ACCESS_KEY):
        raise ValueError("R2_ENDPOINT, R2_ACCESS_KEY_ID and R2_SECRET_ACCESS_KEY must be set in .env for R2 storage.")
    return boto3.client(
        "s3",
        endpoint_url=config.R2_ENDPOINT,
        aws_access_key_id=config.R2_ACCESS_KEY_ID,
        aws_secret_access_key=config.R2_SECRET_ACCESS_KEY,
        region_name="auto",
    )


def public_url(key: str, bucket: str | None = None) -> str:
    """Public URL for an object key (R2_PUBLIC_BASE_URL when set, else the bucket endpoint)."""
    key = key.lstrip("/")
    if config.R2_PUBLIC_BASE_URL:
        return f"{config.R2_PUBLIC_BASE_URL.rstrip('/')}/{key}"
    bucket = bucket or config.R2_VIDEOS_BUCKET
    return f"{config.R2_ENDPOINT.rstrip('/')}/{bucket}/{key}"


def upload(local_file, key: str, bucket: str | None = None, client=None, content_type: str = "video/mp4") -> str:
    """
    Upload a local file and return its public URL.
    Errors (missing file, credentials, boto/botocore failures) propagate; the job controller
    falls back to the local path.
    """
    local_file = Path(local_file)
    if not local_file.exists():
        raise FileNotFoundError(f"Upload source missing: {local_file}")
    bucket = bucket or config.R2_VIDEOS_BUCKET
    client = client or get_r2_client()
    print(f"[UPLOAD] {local_file.name} -> {bucket}/{key}")
    client.upload_file(str(local_file), bucket, key, ExtraArgs={"ContentType": content_type})
    url = public_url(key, bucket)
    print(f"[UPLOAD] Done: {url}")
    return url
