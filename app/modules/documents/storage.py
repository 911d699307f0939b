import boto3
from botocore.exceptions import ClientError
from app.config.settings import settings
from typing import Optional
import logging

logger = logging.getLogger(__name__)

SUPABASE_BUCKET = "trade-documents"


class S3DocumentStore:
    def __init__(self):
        if not all([settings.aws_access_key_id, settings.aws_secret_access_key, settings.s3_bucket_name]):
            raise ValueError("AWS S3 credentials and bucket name must be configured")

        self.s3_client = boto3.client(
            "s3",
            aws_access_key_id=settings.aws_access_key_id,
            aws_secret_access_key=settings.aws_secret_access_key,
            region_name=settings.aws_region
        )
        self.bucket_name = settings.s3_bucket_name

    def put(self, content: bytes, key: str, content_type: str) -> str:
        """Store a document and return its s3:// path"""
        try:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=content,
                ContentType=content_type,
                ServerSideEncryption="AES256"
            )
            return f"s3://{self.bucket_name}/{key}"
        except ClientError as e:
            logger.error(f"Failed to upload document to S3: {str(e)}")
            raise

    def key_for(self, path: str) -> str:
        return path.replace(f"s3://{self.bucket_name}/", "", 1)

    def remove(self, path: str) -> bool:
        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=self.key_for(path))
            return True
        except ClientError as e:
            logger.error(f"Failed to delete document from S3: {str(e)}")
            return False

    def signed_url(self, path: str, expires_in: int = 3600) -> Optional[str]:
        try:
            return self.s3_client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket_name, "Key": self.key_for(path)},
                ExpiresIn=expires_in
            )
        except ClientError as e:
            logger.error(f"Failed to sign S3 URL for {path}: {str(e)}")
            return None


def build_s3_store() -> Optional[S3DocumentStore]:
    """S3 when fully configured, otherwise None and documents go to Supabase Storage."""
    if not all([settings.aws_access_key_id, settings.aws_secret_access_key, settings.s3_bucket_name]):
        logger.info("S3 credentials not fully configured, using Supabase Storage for documents")
        return None
    try:
        return S3DocumentStore()
    except Exception as e:
        logger.warning(f"S3 storage initialization failed ({str(e)}), using Supabase Storage")
        return None
