"""
S3 archive for completed reviews.

Uploads each review result as a JSON document for audit trails and
analytics. Archiving is optional and never affects the review response.
"""

import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from review_assistant.config import Settings
from review_assistant.llm.schemas import utcnow

logger = logging.getLogger(__name__)


class ReviewArchive:
    """
    Client for archiving review results to AWS S3.

    Disabled when no bucket is configured.
    """

    def __init__(self, settings: Settings, client: Any = None):
        """
        Initialize the archive.

        Args:
            settings: Application settings with S3 configuration
            client: Optional pre-built boto3 S3 client
        """
        self.bucket_name = settings.S3_BUCKET_NAME
        self.prefix = settings.S3_REVIEWS_PREFIX
        self.enabled = settings.s3_enabled
        self.client = client

        if self.enabled and self.client is None:
            try:
                import boto3
                self.client = boto3.client(
                    "s3",
                    aws_access_key_id=settings.AWS_ACCESS_KEY_ID or None,
                    aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY or None,
                    region_name=settings.AWS_REGION,
                )
                logger.info(f"S3 review archive initialized for bucket: {self.bucket_name}")
            except Exception as e:
                logger.error(f"Failed to initialize S3 client: {e}")
                self.enabled = False
        elif not self.enabled:
            logger.info("S3 review archive is disabled")

    def review_key(self, session_id: str, review_id: str, timestamp: datetime) -> str:
        date_path = timestamp.strftime("%Y/%m/%d")
        return f"{self.prefix}{date_path}/{session_id}/{review_id}.json"

    async def upload_review(
        self,
        session_id: str,
        review_id: str,
        review_data: Dict[str, Any],
        timestamp: Optional[datetime] = None,
    ) -> Optional[str]:
        """
        Upload review data to S3.

        Args:
            session_id: Owning session
            review_id: Review identifier
            review_data: Serialized review result
            timestamp: Review timestamp (uses current time if not provided)

        Returns:
            S3 key of the uploaded object, or None if upload failed/disabled
        """
        if not self.enabled:
            logger.debug("S3 upload skipped (disabled)")
            return None

        timestamp = timestamp or utcnow()
        key = self.review_key(session_id, review_id, timestamp)

        try:
            await asyncio.to_thread(
                self.client.put_object,
                Bucket=self.bucket_name,
                Key=key,
                Body=json.dumps(review_data, indent=2, default=str).encode("utf-8"),
                ContentType="application/json",
                Metadata={
                    "session_id": session_id,
                    "review_id": review_id,
                    "timestamp": timestamp.isoformat(),
                },
            )
        except Exception as e:
            logger.error(f"Failed to upload review to S3: {e}")
            return None

        logger.info(f"Review archived to S3: {key}")
        return key
