import boto3
import structlog
from botocore.client import Config
from botocore.exceptions import ClientError

from adstudio.core.config import Settings

logger = structlog.get_logger()


def _with_scheme(endpoint: str) -> str:
    if not endpoint.startswith(("http://", "https://")):
        return f"http://{endpoint}"
    return endpoint


class StorageService:
    """S3-compatible object storage (R2 in production, MinIO locally)."""

    def __init__(self, settings: Settings) -> None:
        endpoint = _with_scheme(settings.storage_endpoint)
        credentials = {
            "aws_access_key_id": settings.storage_access_key,
            "aws_secret_access_key": settings.storage_secret_key,
            "region_name": settings.storage_region,
            "config": Config(signature_version="s3v4"),
        }

        self.client = boto3.client("s3", endpoint_url=endpoint, **credentials)
        # Presigned URLs must be signed for the host the browser will talk to
        self.presign_client = boto3.client(
            "s3",
            endpoint_url=_with_scheme(settings.storage_external_endpoint or endpoint),
            **credentials,
        )
        self.bucket = settings.storage_bucket
        self.public_base_url = settings.storage_public_url.rstrip("/")
        self.upload_expiry = settings.upload_url_expiry_seconds

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"

    def upload_file(self, local_path: str, key: str, content_type: str | None = None) -> str:
        """Upload a local file and return its public URL."""
        extra_args = {"ContentType": content_type} if content_type else None
        self.client.upload_file(local_path, self.bucket, key, ExtraArgs=extra_args)
        logger.info("file_uploaded", bucket=self.bucket, key=key)
        return self.public_url(key)

    def generate_upload_url(self, key: str, content_type: str, expires_in: int | None = None) -> str:
        return self.presign_client.generate_presigned_url(
            "put_object",
            Params={"Bucket": self.bucket, "Key": key, "ContentType": content_type},
            ExpiresIn=expires_in or self.upload_expiry,
        )

    def file_exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError:
            return False

    def ensure_bucket_exists(self) -> None:
        try:
            self.client.head_bucket(Bucket=self.bucket)
        except ClientError:
            self.client.create_bucket(Bucket=self.bucket)
            logger.info("bucket_created", bucket=self.bucket)
