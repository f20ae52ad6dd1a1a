"""Upload zipped Lambda artifacts to a versioned S3 bucket."""

import logging
from pathlib import Path
from typing import Any, List, Optional, Union

import click
from botocore.exceptions import BotoCoreError, ClientError

from errors import UploadError

from .versions import ArtifactVersion

logger = logging.getLogger(__name__)

MISSING_BUCKET_CODES = ("404", "NoSuchBucket", "NotFound")


class ArtifactUploader:
    """Copy local zip files into a versioned artifact bucket."""

    def __init__(self, s3_client: Any, region: str = "us-east-1") -> None:
        """Initialize the uploader.

        Args:
            s3_client: boto3 S3 client
            region: Region for the bucket if it has to be created
        """
        self.s3 = s3_client
        self.region = region

    def upload_directory(
        self, directory: Union[str, Path], bucket: str
    ) -> List[ArtifactVersion]:
        """Upload every *.zip file in a directory, keyed by file name.

        Returns:
            The version created for each uploaded artifact
        """
        directory = Path(directory)
        if not directory.is_dir():
            raise UploadError(
                "read", f"target directory {directory}", "not a directory"
            )

        self.ensure_versioned_bucket(bucket)

        uploaded: List[ArtifactVersion] = []
        for path in sorted(directory.glob("*.zip")):
            uploaded.append(self.upload_file(path, bucket))

        if not uploaded:
            logger.warning(f"No zip files found in {directory}")
        return uploaded

    def upload_file(self, path: Path, bucket: str, key: Optional[str] = None) -> ArtifactVersion:
        """Upload one file and return the version S3 assigned to it."""
        key = key or path.name
        click.echo(f"uploading to s3://{bucket}/{key}")

        try:
            with open(path, "rb") as body:
                response = self.s3.put_object(Bucket=bucket, Key=key, Body=body)
        except OSError as e:
            raise UploadError("open", f"file {path}", e) from e
        except (ClientError, BotoCoreError) as e:
            raise UploadError("upload file to", f"s3://{bucket}/{key}", e) from e

        version_id = response.get("VersionId")
        if not version_id:
            raise UploadError(
                "version", f"s3://{bucket}/{key}", f"bucket {bucket} must support versioning"
            )
        return ArtifactVersion(key=key, version_id=version_id, is_latest=True)

    def ensure_versioned_bucket(self, bucket: str) -> None:
        """Create the bucket with versioning enabled unless it already exists."""
        try:
            self.s3.head_bucket(Bucket=bucket)
            click.echo(f"bucket {bucket} already exists")
            return
        except ClientError as e:
            if e.response["Error"]["Code"] not in MISSING_BUCKET_CODES:
                raise UploadError("head bucket", bucket, e) from e
        except BotoCoreError as e:
            raise UploadError("head bucket", bucket, e) from e

        try:
            if self.region == "us-east-1":
                self.s3.create_bucket(Bucket=bucket)
            else:
                self.s3.create_bucket(
                    Bucket=bucket,
                    CreateBucketConfiguration={"LocationConstraint": self.region},
                )
        except (ClientError, BotoCoreError) as e:
            raise UploadError("create bucket", bucket, e) from e

        try:
            self.s3.put_bucket_versioning(
                Bucket=bucket, VersioningConfiguration={"Status": "Enabled"}
            )
        except (ClientError, BotoCoreError) as e:
            raise UploadError("enable versioning for bucket", bucket, e) from e

        click.echo(f"bucket {bucket} created")
