"""
Command descriptions: name, help texts, flags, arguments and the
auxiliary parameter layers a command carries.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, model_validator

from dbcmd.core.layers import ParameterLayer
from dbcmd.core.param_type import ParameterDefinition, check_unique_names


class CommandDescription(BaseModel):
    """Everything a front end needs to expose a command; no behaviour."""

    name: str = ""
    short: str = ""
    long: str = ""
    layout: list[Any] = Field(default_factory=list)
    flags: list[ParameterDefinition] = Field(default_factory=list)
    arguments: list[ParameterDefinition] = Field(default_factory=list)
    layers: list[ParameterLayer] = Field(default_factory=list)
    parents: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_names(self) -> CommandDescription:
        check_unique_names(self.all_parameters(), f"command '{self.name}' parameter")
        slugs = [layer.slug for layer in self.layers]
        dupes = sorted({s for s in slugs if slugs.count(s) > 1})
        if dupes:
            raise ValueError(f"duplicate layer slug(s): {', '.join(dupes)}")
        return self

    def all_parameters(self) -> list[ParameterDefinition]:
        """Flags, then arguments, then each layer's flags in layer order."""
        out = [*self.flags, *self.arguments]
        for layer in self.layers:
            out.extend(layer.flags)
        return out

    def layer(self, slug: str) -> ParameterLayer | None:
        for layer in self.layers:
            if layer.slug == slug:
                return layer
        return None

    def add_layers(self, *layers: ParameterLayer) -> None:
        """Append *layers* whose slug is not present yet, keeping their order."""
        for layer in layers:
            if self.layer(layer.slug) is None:
                self.layers.append(layer)
        check_unique_names(self.all_parameters(), f"command '{self.name}' parameter")
