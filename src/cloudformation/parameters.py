"""
Template parameter extraction and binding.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

import click
import yaml

from artifacts.versions import ArtifactVersion
from errors import ParameterBindingError, TemplateParseError

logger = logging.getLogger(__name__)

DEFAULT_ARTIFACT_LOCATION_PARAMETER = "LambdaBucket"

_NON_ALPHANUMERIC = re.compile(r"[^a-zA-Z0-9]+")


class CloudFormationYAMLLoader(yaml.SafeLoader):
    """YAML loader that can handle CloudFormation intrinsic functions."""

    pass


def cfn_tag_constructor(loader, tag_suffix, node):
    """Generic constructor for CloudFormation tags."""
    if isinstance(node, yaml.ScalarNode):
        return loader.construct_scalar(node)
    elif isinstance(node, yaml.SequenceNode):
        return loader.construct_sequence(node)
    elif isinstance(node, yaml.MappingNode):
        return loader.construct_mapping(node)
    else:
        raise yaml.constructor.ConstructorError(
            None,
            None,
            f"could not determine a constructor for the tag '!{tag_suffix}'",
            node.start_mark,
        )


cfn_tags = [
    "Ref", "GetAtt", "GetAZs", "ImportValue", "Join", "Select",
    "Split", "Sub", "Transform", "Base64", "Cidr", "FindInMap",
    "GetParam", "Condition", "Equals", "If", "Not", "And", "Or",
]

for tag in cfn_tags:
    CloudFormationYAMLLoader.add_constructor(
        f"!{tag}",
        lambda loader, node, tag=tag: cfn_tag_constructor(loader, tag, node),
    )


@dataclass(frozen=True)
class StackParameter:
    """A bound stack parameter. Both name and value must be non-empty."""

    name: str
    value: str

    def __post_init__(self) -> None:
        if not self.name:
            raise ParameterBindingError(
                "illegal attempt to set template parameter with blank name"
            )
        if not self.value:
            raise ParameterBindingError(
                f"illegal attempt to set template parameter, {self.name}, with blank value"
            )

    def to_api(self) -> Dict[str, str]:
        """Render in the shape CreateStack/UpdateStack expect."""
        return {"ParameterKey": self.name, "ParameterValue": self.value}


def load_template(template_body: str) -> Dict[str, Any]:
    """Parse a YAML or JSON template body into a mapping."""
    try:
        template = yaml.load(template_body, Loader=CloudFormationYAMLLoader)
    except yaml.YAMLError as e:
        raise TemplateParseError("parse", "template body", e) from e

    if template is None:
        return {}
    if not isinstance(template, dict):
        raise TemplateParseError(
            "parse", "template body", f"expected a mapping, got {type(template).__name__}"
        )
    return template


def extract_parameter_names(template_body: str) -> List[str]:
    """Return the declared parameter names, deduplicated and sorted."""
    template = load_template(template_body)
    parameters = template.get("Parameters") or {}
    if not isinstance(parameters, dict):
        raise TemplateParseError(
            "parse", "template Parameters block", "expected a mapping of parameter names"
        )
    return sorted({str(name) for name in parameters})


def normalize_artifact_key(key: str) -> str:
    """Strip non-alphanumeric characters and lowercase, e.g. "My-Fn.zip" -> "myfnzip"."""
    return _NON_ALPHANUMERIC.sub("", key).lower()


def match_artifact(
    name: str, versions: Iterable[ArtifactVersion]
) -> Optional[ArtifactVersion]:
    """Find the artifact whose normalized key equals the lowercased parameter name.

    When several artifacts normalize to the same candidate the first one wins.
    """
    candidate = name.lower()
    for version in versions:
        if normalize_artifact_key(version.key) == candidate:
            return version
    return None


def resolve_parameters(
    names: Iterable[str],
    versions: List[ArtifactVersion],
    artifact_location: str,
    location_parameter: str = DEFAULT_ARTIFACT_LOCATION_PARAMETER,
) -> List[StackParameter]:
    """
    Bind declared template parameters to values.

    Args:
        names: Parameter names declared by the template
        versions: Latest artifact versions in the artifact bucket
        artifact_location: Value for the artifact-location parameter
        location_parameter: Name of the reserved artifact-location parameter

    Returns:
        Bound parameters. Names with no match are omitted so the template
        default applies.

    Raises:
        ParameterBindingError: The location parameter is declared but
            artifact_location is empty, or a matched version id is blank
    """
    parameters: List[StackParameter] = []

    for name in names:
        if name == location_parameter:
            parameters.append(_bind(name, artifact_location))
            continue

        version = match_artifact(name, versions)
        if version is None:
            logger.debug(f"No artifact matches parameter {name}")
            continue
        parameters.append(_bind(name, version.version_id))

    return parameters


def _bind(name: str, value: str) -> StackParameter:
    parameter = StackParameter(name, value)
    click.echo(f"parameter {parameter.name}: {parameter.value}")
    return parameter
