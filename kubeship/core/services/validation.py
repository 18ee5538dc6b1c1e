"""
Release validation — does a deployment fit an environment's data?

Every problem is collected, not just the first, so the operator sees the
whole picture before deciding whether to continue.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from kubeship.core.models.deployment import DeploymentDescriptor, EnvVarDefinition
from kubeship.core.models.release import Problem, ProblemSource

logger = logging.getLogger(__name__)

# Dependency types that name another component of the same deployment.
COMPONENT_DEPENDENCY_TYPES = frozenset({"KubeFox", "Component", ""})

PROBLEM_VAR_NOT_FOUND = "VarNotFound"
PROBLEM_VAR_WRONG_TYPE = "VarWrongType"
PROBLEM_DEPENDENCY_NOT_FOUND = "DependencyNotFound"
PROBLEM_ADAPTER_NOT_FOUND = "AdapterNotFound"

_VAR_TYPES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "number": (int, float),
    "boolean": (bool,),
    "array": (list,),
}

# (adapter name, adapter type) → adapter resource, or None if absent.
AdapterLookup = Callable[[str, str], "dict[str, Any] | None"]


def _env_value(data: dict[str, Any], name: str) -> Any:
    for section in ("vars", "secrets"):
        values = data.get(section) or {}
        if name in values:
            return values[name]
    return None


def _check_vars(
    schema: dict[str, EnvVarDefinition],
    data: dict[str, Any],
    source: ProblemSource,
) -> list[Problem]:
    problems: list[Problem] = []
    for var_name, definition in sorted(schema.items()):
        value = _env_value(data, var_name)
        if value is None:
            if definition.required:
                problems.append(Problem(
                    type=PROBLEM_VAR_NOT_FOUND,
                    message=f"Required var '{var_name}' is not set in the environment",
                    causes=[source.model_copy(update={"value": var_name})],
                ))
            continue
        expected = _VAR_TYPES.get(definition.type.lower())
        # bool is an int subclass; a Number var must not accept True
        wrong_bool = definition.type.lower() == "number" and isinstance(value, bool)
        if expected and (not isinstance(value, expected) or wrong_bool):
            problems.append(Problem(
                type=PROBLEM_VAR_WRONG_TYPE,
                message=f"Var '{var_name}' should be {definition.type}, got {type(value).__name__}",
                causes=[source.model_copy(update={"value": var_name})],
            ))
    return problems


def validate(
    deployment: DeploymentDescriptor,
    data: dict[str, Any],
    adapter_lookup: AdapterLookup,
) -> list[Problem]:
    """All problems that would prevent *deployment* running on *data*."""
    problems: list[Problem] = []

    for comp_name, comp in sorted(deployment.components.items()):
        base = ProblemSource(
            kind="AppDeployment",
            name=deployment.name,
            path=f"$.spec.components.{comp_name}",
        )
        problems += _check_vars(
            comp.env_var_schema, data, base.model_copy(update={"path": f"{base.path}.envVarSchema"})
        )
        for i, route in enumerate(comp.routes):
            problems += _check_vars(
                route.env_var_schema,
                data,
                base.model_copy(update={"path": f"{base.path}.routes[{i}].envVarSchema"}),
            )

        for dep_name, dep in sorted(comp.dependencies.items()):
            source = base.model_copy(update={"path": f"{base.path}.dependencies.{dep_name}", "value": dep_name})
            if dep.type in COMPONENT_DEPENDENCY_TYPES:
                if dep_name not in deployment.components:
                    problems.append(Problem(
                        type=PROBLEM_DEPENDENCY_NOT_FOUND,
                        message=f"Component '{comp_name}' depends on component '{dep_name}' which is not part of the deployment",
                        causes=[source],
                    ))
            elif adapter_lookup(dep_name, dep.type) is None:
                problems.append(Problem(
                    type=PROBLEM_ADAPTER_NOT_FOUND,
                    message=f"Component '{comp_name}' depends on {dep.type} '{dep_name}' which was not found",
                    causes=[source],
                ))

    logger.debug("Validation of '%s' found %d problem(s)", deployment.name, len(problems))
    return problems
