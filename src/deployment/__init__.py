"""
Deployment of templated stacks.
"""

from .stack_deployer import StackDeployer, read_template

__all__ = ["StackDeployer", "read_template"]
