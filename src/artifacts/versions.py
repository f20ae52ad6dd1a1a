"""
List the latest version of every object in a versioned artifact bucket.
"""

import logging
from dataclasses import dataclass
from typing import Any, List

from botocore.exceptions import BotoCoreError, ClientError

from errors import StoreAccessError

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100


@dataclass(frozen=True)
class ArtifactVersion:
    """A single object revision in the artifact store."""

    key: str
    version_id: str
    is_latest: bool = True


class ArtifactVersionLister:
    """List the current version of every artifact in an S3 bucket."""

    def __init__(self, s3_client: Any, page_size: int = DEFAULT_PAGE_SIZE):
        """
        Initialize the lister.

        Args:
            s3_client: boto3 S3 client
            page_size: Maximum number of versions requested per page
        """
        self.s3 = s3_client
        self.page_size = page_size

    def list_latest_versions(self, bucket: str) -> List[ArtifactVersion]:
        """Return the latest version of each key in the bucket.

        An empty bucket name means artifact parameterization is not in use
        and yields an empty list.
        """
        if not bucket:
            return []

        versions: List[ArtifactVersion] = []
        try:
            paginator = self.s3.get_paginator("list_object_versions")
            pages = paginator.paginate(
                Bucket=bucket, PaginationConfig={"PageSize": self.page_size}
            )
            for page in pages:
                for version in page.get("Versions", []):
                    if not version.get("IsLatest"):
                        continue
                    versions.append(
                        ArtifactVersion(
                            key=version["Key"],
                            version_id=version["VersionId"],
                            is_latest=True,
                        )
                    )
        except (ClientError, BotoCoreError) as e:
            raise StoreAccessError("list object versions in bucket", bucket, e) from e

        logger.debug(f"Found {len(versions)} latest artifact versions in {bucket}")
        return versions
