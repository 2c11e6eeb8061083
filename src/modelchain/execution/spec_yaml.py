"""Pydantic models for pipeline documents (YAML / JSON).

Lets model definitions declare their operation pipelines as data instead
of Python, producing the same ``Spec`` tuples code-first authors build.

Usage::

    from modelchain.execution.spec_yaml import PipelineDocument

    doc = PipelineDocument.from_yaml_file("models/post.yaml")
    specs = doc.get("Post", "create")
    outcome = await execute_chain(specs, ctx)

Example YAML::

    apiVersion: modelchain.io/v1
    kind: Pipeline
    models:
      - name: Post
        plural: posts
        operations:
          list:
            - log_request
            - name: throttle
              args: {wait: 0.5, default: []}
            - name: cacheable
              args: {ttl: 30}
          create:
            - name: timed
              stage: server
            - name: persist
              middlewares:
                - connect
                - audit

Manifesto:
    Operation pipelines are configuration. Authors should be able to
    review and change them without touching code, and a malformed
    document should fail at load time with a precise message.

Tags:
    modelchain, execution, yaml, declarative, config-driven

Doc-Types:
    api-reference
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from modelchain.core.errors import InvalidConfigError, SpecDefinitionError
from modelchain.execution.scope import Scope
from modelchain.execution.spec import Bare, Configured, Nested, Spec


class StepSpecModel(BaseModel):
    """One step entry in mapping form.

    ``stage`` is accepted for ``scope`` and ``middlewares`` for
    ``children``.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    name: str = Field(..., min_length=1, description="Registered step name")
    args: Any = Field(default=None, description="Factory arguments")
    scope: Scope = Field(
        default=Scope.DUAL,
        validation_alias=AliasChoices("scope", "stage"),
        description="privileged | restricted | dual (server | client | hybrid)",
    )
    children: list[StepSpecModel | str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("children", "middlewares"),
        description="Sub-pipeline run before the step (privileged only)",
    )

    @field_validator("scope", mode="before")
    @classmethod
    def parse_scope(cls, v: Any) -> Scope:
        try:
            return Scope.parse(v)
        except InvalidConfigError as e:
            raise ValueError(e.message) from e

    def to_spec(self) -> Spec:
        if self.children:
            return Nested(self.name, self.args, tuple(_entry_to_spec(c) for c in self.children))
        return Configured(self.name, self.args, self.scope)


def _entry_to_spec(entry: StepSpecModel | str) -> Spec:
    if isinstance(entry, str):
        return Bare(entry)
    return entry.to_spec()


class ModelSpec(BaseModel):
    """A model and its operation pipelines."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, description="Model (subject) name")
    plural: str | None = Field(default=None, description="Plural used in routes")
    operations: dict[str, list[StepSpecModel | str]] = Field(
        default_factory=dict,
        description="operation name -> ordered step entries",
    )

    @field_validator("operations")
    @classmethod
    def validate_entries(cls, v: dict[str, list[StepSpecModel | str]]) -> dict[str, list[StepSpecModel | str]]:
        for operation, entries in v.items():
            for entry in entries:
                if isinstance(entry, str) and not entry.strip():
                    raise ValueError(f"Operation '{operation}' has an empty step name")
        return v

    def to_specs(self) -> dict[str, tuple[Spec, ...]]:
        """Operation pipelines as immutable spec tuples."""
        return {op: tuple(_entry_to_spec(e) for e in entries) for op, entries in self.operations.items()}


class PipelineDocument(BaseModel):
    """Root of a pipeline document."""

    model_config = ConfigDict(extra="forbid")

    apiVersion: Literal["modelchain.io/v1"] = Field(
        default="modelchain.io/v1",
        description="API version, must be modelchain.io/v1",
    )
    kind: Literal["Pipeline"] = Field(default="Pipeline", description="Resource kind, must be Pipeline")
    models: list[ModelSpec] = Field(default_factory=list)

    @field_validator("models")
    @classmethod
    def validate_unique_names(cls, v: list[ModelSpec]) -> list[ModelSpec]:
        """Ensure model names are unique."""
        names = [m.name for m in v]
        if len(names) != len(set(names)):
            duplicates = {n for n in names if names.count(n) > 1}
            raise ValueError(f"Duplicate model names: {duplicates}")
        return v

    def model_names(self) -> list[str]:
        return [m.name for m in self.models]

    def get_model(self, name: str) -> ModelSpec:
        for model in self.models:
            if model.name == name:
                return model
        raise SpecDefinitionError(f"Model '{name}' is not defined (available: {self.model_names() or 'none'})")

    def get(self, model: str, operation: str) -> tuple[Spec, ...]:
        """Spec tuple for one ``model.operation``."""
        specs = self.get_model(model).to_specs()
        if operation not in specs:
            raise SpecDefinitionError(
                f"Model '{model}' has no operation '{operation}' (available: {sorted(specs) or 'none'})"
            )
        return specs[operation]

    def to_specs(self) -> dict[str, dict[str, tuple[Spec, ...]]]:
        """All pipelines, keyed by model then operation."""
        return {m.name: m.to_specs() for m in self.models}

    @classmethod
    def from_dict(cls, data: Any) -> PipelineDocument:
        """Validate already-parsed data.

        Raises:
            SpecDefinitionError: If the data does not match the schema
        """
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise SpecDefinitionError(f"Invalid pipeline document: {e}", cause=e) from e

    @classmethod
    def from_yaml(cls, yaml_content: str) -> PipelineDocument:
        """Parse and validate YAML (or JSON) content.

        Raises:
            SpecDefinitionError: If the YAML is invalid or doesn't match the schema
        """
        try:
            data = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            raise SpecDefinitionError(f"Invalid YAML: {e}", cause=e) from e
        return cls.from_dict(data)

    @classmethod
    def from_yaml_file(cls, path: str | Path) -> PipelineDocument:
        """Load and validate a document file."""
        content = Path(path).read_text(encoding="utf-8")
        return cls.from_yaml(content)


__all__ = ["ModelSpec", "PipelineDocument", "StepSpecModel"]
