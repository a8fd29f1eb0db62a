"""
S3 storage for uploaded meal photos
"""
import boto3
from urllib.parse import urlparse
from .config import settings
from .exceptions import S3StorageError
from .logger import logger

s3 = boto3.client(
    "s3",
    aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
    aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
    region_name=settings.AWS_REGION_NAME,
    endpoint_url=settings.AWS_ENDPOINT_URL,
)

def photo_key(owner_id: str, upload_id: str, filename: str) -> str:
    return f"meal_photos/{owner_id}/{upload_id}_{filename or 'photo'}"

def put_image(data: bytes, key: str, content_type: str = "image/jpeg") -> str:
    """Upload image bytes and return their s3:// URI"""
    try:
        s3.put_object(Bucket=settings.S3_BUCKET_NAME, Key=key, Body=data, ContentType=content_type)
        logger.info(f"Uploaded file to S3: {key}", extra={"size": len(data)})
        return f"s3://{settings.S3_BUCKET_NAME}/{key}"
    except Exception as e:
        logger.error(f"Failed to upload file to S3: {e}")
        raise S3StorageError(f"Failed to upload file: {str(e)}")

def read_image(s3_uri: str) -> bytes:
    """Read image bytes back from an s3:// URI"""
    p = urlparse(s3_uri)
    if p.scheme == "s3":
        bucket = p.netloc
        key = p.path.lstrip("/")
    else:
        bucket = settings.S3_BUCKET_NAME
        key = s3_uri.lstrip("/")
    try:
        obj = s3.get_object(Bucket=bucket, Key=key)
        data = obj["Body"].read()
        logger.debug(f"Read S3 object: bucket={bucket}, key={key}, size={len(data)}")
        return data
    except Exception as e:
        logger.error(f"Failed to read image from S3: {s3_uri}, error: {e}")
        raise S3StorageError(f"Failed to read file: {str(e)}")

def delete_image(s3_uri: str) -> None:
    """Remove an uploaded photo by its s3:// URI"""
    p = urlparse(s3_uri)
    bucket = p.netloc if p.scheme == "s3" else settings.S3_BUCKET_NAME
    key = p.path.lstrip("/") if p.scheme == "s3" else s3_uri.lstrip("/")
    try:
        s3.delete_object(Bucket=bucket, Key=key)
        logger.info(f"Deleted S3 object: {key}")
    except Exception as e:
        logger.error(f"Failed to delete image from S3: {s3_uri}, error: {e}")
        raise S3StorageError(f"Failed to delete file: {str(e)}")
