"""
Thin adapter over boto3's ECR client.

Exposes the three registry operations the inventory engine needs, each in a
cursor-per-call shape so pagination stays under the caller's control:

    list_repositories(cursor)           -> (names, next_cursor)
    list_images(repository, cursor)     -> (image_details, next_cursor)
    delete_images(repository, digests)  -> (confirmed_digests, failures)

SDK errors are translated into RegistryError. Nothing here retries beyond what
botocore's own retry configuration does.
"""

from typing import Any, Dict, List, Optional, Tuple

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ecr_manager.config_manager import ECR_MAX_BATCH_SIZE, ConfigManager
from ecr_manager.error_utils import InvalidInputError, create_registry_error
from ecr_manager.logging_utils import get_logger

logger = get_logger(__name__)

Page = Tuple[List[Any], Optional[str]]


def get_ecr_client(region_name: str, max_pool_connections: int = 20, max_attempts: int = 3):
    """
    Create a boto3 ECR client.

    The connection pool is widened from botocore's default of 10 so that a
    concurrent aggregation (analysis.max_workers > 1) does not exhaust it.
    ``max_attempts`` is handed to botocore's standard retry mode.
    """
    config = Config(
        max_pool_connections=max_pool_connections,
        retries={"max_attempts": max_attempts, "mode": "standard"},
    )
    return boto3.client("ecr", region_name=region_name, config=config)


class EcrRegistryClient:
    """Registry operations on top of a boto3 ECR client"""

    def __init__(self, ecr_client, page_size: int = 100):
        self.ecr_client = ecr_client
        self.page_size = page_size

    @classmethod
    def from_config(cls, config: ConfigManager) -> "EcrRegistryClient":
        region = config.get_aws_region()
        logger.info(f"Creating ECR client for region {region}")
        client = get_ecr_client(
            region,
            max_pool_connections=config.get_max_pool_connections(),
            max_attempts=config.get_max_attempts(),
        )
        return cls(client, page_size=config.get_page_size())

    def _call(self, operation: str, **kwargs) -> Dict[str, Any]:
        try:
            return getattr(self.ecr_client, operation)(**kwargs)
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code")
            raise create_registry_error(operation, e, error_code=error_code) from e
        except BotoCoreError as e:
            raise create_registry_error(operation, e) from e

    def list_repositories(self, cursor: Optional[str] = None) -> Page:
        """Return one page of repository names and the next page token"""
        kwargs: Dict[str, Any] = {"maxResults": self.page_size}
        if cursor:
            kwargs["nextToken"] = cursor
        response = self._call("describe_repositories", **kwargs)
        names = [repo["repositoryName"] for repo in response.get("repositories", [])]
        return names, response.get("nextToken")

    def list_images(self, repository: str, cursor: Optional[str] = None) -> Page:
        """Return one page of raw imageDetails for a repository and the next page token"""
        kwargs: Dict[str, Any] = {"repositoryName": repository, "maxResults": self.page_size}
        if cursor:
            kwargs["nextToken"] = cursor
        response = self._call("describe_images", **kwargs)
        return list(response.get("imageDetails", [])), response.get("nextToken")

    def delete_images(self, repository: str, digests: List[str]) -> Tuple[List[str], List[Dict[str, str]]]:
        """Delete up to 100 images by digest in a single BatchDeleteImage call

        Returns:
            Tuple of (digests ECR confirmed as deleted, [{"digest", "reason"}] for items it refused)
        """
        if len(digests) > ECR_MAX_BATCH_SIZE:
            raise InvalidInputError(
                f"BatchDeleteImage accepts at most {ECR_MAX_BATCH_SIZE} images per call, got {len(digests)}",
                field="imageDigests",
            )
        response = self._call(
            "batch_delete_image",
            repositoryName=repository,
            imageIds=[{"imageDigest": digest} for digest in digests],
        )

        # One imageIds entry is returned per tag of a deleted image
        confirmed = []
        for image_id in response.get("imageIds") or []:
            digest = image_id.get("imageDigest", "")
            if digest and digest not in confirmed:
                confirmed.append(digest)
        failures = []
        for failure in response.get("failures") or []:
            image_id = failure.get("imageId") or {}
            failures.append({
                "digest": image_id.get("imageDigest") or image_id.get("imageTag") or "",
                "reason": failure.get("failureReason") or failure.get("failureCode") or "unknown",
            })
        return confirmed, failures
