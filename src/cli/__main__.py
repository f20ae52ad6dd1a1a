#!/usr/bin/env python3
"""Main CLI entry point for stack deployment."""

import logging

import click

from .cloudformation import cloudformation as cloudformation_command
from .lambda_cmd import lambda_upload as lambda_command


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
def cli(verbose: bool) -> None:
    """Deploy app to AWS.

    Upload zipped Lambda artifacts and create or update the CloudFormation
    stack that references them.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(message)s",
    )


cli.add_command(cloudformation_command, name="cloudformation")
cli.add_command(lambda_command, name="lambda")


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
