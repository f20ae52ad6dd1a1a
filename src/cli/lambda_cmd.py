#!/usr/bin/env python3
"""Lambda artifact upload CLI command."""

import sys

import click

from config import get_deploy_config
from deployment.stack_deployer import StackDeployer
from errors import DeployError


@click.command(name="lambda")
@click.option("--bucket", required=True, help="Location of where the zipped lambdas should be stored")
@click.option("--target-path", required=True, help="Path to artifact resources (zip files for lambdas)")
@click.option("--region", help="AWS region")
@click.option("--profile", help="AWS profile to use")
@click.option("--config", "config_file", help="Path to a stack-deploy.yaml settings file")
def lambda_upload(bucket, target_path, region, profile, config_file):
    """Upload zipped lambdas from a path to S3."""
    try:
        config = get_deploy_config(config_file, region=region, profile=profile)
        deployer = StackDeployer(config)
        uploaded = deployer.upload_artifacts(target_path, bucket)
        click.echo(f"✅ Uploaded {len(uploaded)} artifacts to {bucket}")

    except DeployError as e:
        click.echo(f"Error: unable to upload lambdas: {e}", err=True)
        sys.exit(1)
