"""
Deploy a CloudFormation template, binding artifact versions as parameters.
"""

import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import boto3
import click

from artifacts.uploader import ArtifactUploader
from artifacts.versions import ArtifactVersion, ArtifactVersionLister
from cloudformation.parameters import (
    StackParameter,
    extract_parameter_names,
    resolve_parameters,
)
from cloudformation.reconciler import ReconciliationOutcome, StackReconciler
from config import DeployConfig
from errors import ConfigError


class StackDeployer:
    """Wire the artifact store, template parameters and reconciler together."""

    def __init__(
        self,
        config: Optional[DeployConfig] = None,
        session: Optional[boto3.Session] = None,
    ):
        """
        Initialize the deployer.

        Args:
            config: Deployment configuration (defaults if not provided)
            session: boto3 session (created from the config if not provided)
        """
        self.config = config or DeployConfig()
        self._session = session or self.config.create_session()
        self._clients: Dict[str, Any] = {}

    def _get_client(self, service: str) -> Any:
        """Get or create AWS client for a service."""
        if service not in self._clients:
            self._clients[service] = self._session.client(service)
        return self._clients[service]

    @property
    def cloudformation(self):
        """Get CloudFormation client."""
        return self._get_client("cloudformation")

    @property
    def s3(self):
        """Get S3 client."""
        return self._get_client("s3")

    def reconciler(self) -> StackReconciler:
        return StackReconciler.from_config(self.config, self.cloudformation)

    def lister(self) -> ArtifactVersionLister:
        return ArtifactVersionLister(self.s3, page_size=self.config.version_page_size)

    def uploader(self) -> ArtifactUploader:
        return ArtifactUploader(self.s3, region=self.config.artifact_bucket_region)

    def resolve(
        self, template_body: str, artifact_bucket: Optional[str]
    ) -> List[StackParameter]:
        """List artifact versions and bind them to the template's parameters."""
        versions = self.lister().list_latest_versions(artifact_bucket or "")
        for version in versions:
            click.echo(f"zipped lambda found: {version.key}, version {version.version_id}")

        names = extract_parameter_names(template_body)
        return resolve_parameters(
            names,
            versions,
            artifact_bucket or "",
            location_parameter=self.config.artifact_location_parameter,
        )

    def deploy(
        self,
        template_path: Union[str, Path],
        stack_name: str,
        artifact_bucket: Optional[str] = None,
        max_attempts: int = 2,
        cancel_event: Optional[threading.Event] = None,
    ) -> ReconciliationOutcome:
        """
        Create or update a stack from a template file.

        When an update has nothing to do, the stack is deleted; once the
        deletion completes reconciliation runs again, up to max_attempts
        reconciliations in total.
        """
        template_body = read_template(template_path)
        parameters = self.resolve(template_body, artifact_bucket)

        reconciler = self.reconciler()
        outcome = reconciler.reconcile(stack_name, template_body, parameters, cancel_event)
        attempts = 1
        while outcome.needs_retry and attempts < max_attempts:
            reconciler.wait_for_deletion(stack_name, cancel_event)
            outcome = reconciler.reconcile(
                stack_name, template_body, parameters, cancel_event
            )
            attempts += 1
        return outcome

    def upload_artifacts(
        self, directory: Union[str, Path], bucket: str
    ) -> List[ArtifactVersion]:
        """Upload zipped artifacts to the (versioned) artifact bucket."""
        return self.uploader().upload_directory(directory, bucket)


def read_template(template_path: Union[str, Path]) -> str:
    """Read a template file."""
    try:
        with open(template_path, "r") as f:
            return f.read()
    except OSError as e:
        raise ConfigError("read", f"template {template_path}", e) from e
