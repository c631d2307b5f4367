"""Publishing of edition metadata documents"""
import asyncio
import logging
from typing import Any, Dict, Optional

import boto3

from moment_editions.config import S3Settings
from moment_editions.exceptions import MetadataPublishError
from moment_editions.utils.json_encoder import json_dumps

logger = logging.getLogger(__name__)

METADATA_KEY_PREFIX = 'metadata'

class MetadataPublisher:
    """
    Uploads metadata JSON to S3 and returns the URI the edition points to.

    Without a bucket nothing is uploaded; the document is expected to be
    served from base_url/<moment_id>.json by the application.
    """

    def __init__(self, s3_settings: S3Settings, base_url: str, s3_client: Optional[Any] = None):
        self.s3_settings = s3_settings
        self.base_url = base_url.rstrip('/')
        self.bucket = s3_settings.bucket
        self.s3_client = s3_client
        if self.bucket and self.s3_client is None:
            self.s3_client = boto3.client(
                's3',
                aws_access_key_id=s3_settings.access_key_id,
                aws_secret_access_key=s3_settings.secret_access_key,
                region_name=s3_settings.region
            )

    def uri_for(self, moment_id: str) -> str:
        if self.bucket:
            return (f"https://{self.bucket}.s3.{self.s3_settings.region}.amazonaws.com/"
                    f"{METADATA_KEY_PREFIX}/{moment_id}.json")
        return f"{self.base_url}/{moment_id}.json"

    async def publish(self, moment_id: str, document: Dict[str, Any]) -> str:
        """Publish the document and return its URI"""
        if not self.bucket:
            return self.uri_for(moment_id)
        return await asyncio.to_thread(self._upload, moment_id, document)

    def _upload(self, moment_id: str, document: Dict[str, Any]) -> str:
        key = f"{METADATA_KEY_PREFIX}/{moment_id}.json"
        try:
            self.s3_client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=json_dumps(document, ensure_ascii=False).encode('utf-8'),
                ContentType='application/json',
                ACL='public-read'
            )
        except Exception as e:  # Boto3/S3 errors
            logger.error(f"Failed to upload metadata to S3 (s3://{self.bucket}/{key}): {e}")
            raise MetadataPublishError(str(e)) from e
        logger.info(f"Uploaded edition metadata to s3://{self.bucket}/{key}")
        return self.uri_for(moment_id)
