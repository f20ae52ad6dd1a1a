#!/usr/bin/env python3
"""
CloudFormation deployment CLI command.
"""

import sys

import click

from config import get_deploy_config
from deployment.stack_deployer import StackDeployer
from errors import DeployError, ParameterBindingError

# Exit status for internal defects, as in sysexits.h EX_SOFTWARE
EXIT_INTERNAL_ERROR = 70
EXIT_INTERRUPTED = 130


@click.command(name="cloudformation")
@click.option("--path", "template_path", required=True, help="Path to CloudFormation template")
@click.option("--stack-name", "-s", required=True, help="Name of the CloudFormation stack")
@click.option("--lambdas-bucket", help="Optional location of the zipped lambdas")
@click.option(
    "--max-attempts",
    default=2,
    show_default=True,
    type=click.IntRange(min=1),
    help="Reconciliations to run when an empty update forces a re-create",
)
@click.option("--region", help="AWS region")
@click.option("--profile", help="AWS profile to use")
@click.option("--config", "config_file", help="Path to a stack-deploy.yaml settings file")
def cloudformation(
    template_path, stack_name, lambdas_bucket, max_attempts, region, profile, config_file
) -> None:
    """Deploy CloudFormation stack."""
    try:
        config = get_deploy_config(config_file, region=region, profile=profile)
        deployer = StackDeployer(config)
        outcome = deployer.deploy(
            template_path, stack_name, lambdas_bucket, max_attempts=max_attempts
        )
        if outcome.needs_retry:
            click.echo(f"Stack {stack_name} was deleted; run the deployment again")

    except ParameterBindingError as e:
        click.echo(f"Internal error: {e}", err=True)
        sys.exit(EXIT_INTERNAL_ERROR)
    except DeployError as e:
        click.echo(f"Error: unable to create or update cloudformation stack: {e}", err=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("Cancelled", err=True)
        sys.exit(EXIT_INTERRUPTED)
