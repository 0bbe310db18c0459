"""Pydantic models for note templates."""

from typing import Literal

from pydantic import BaseModel, Field

TemplateOperation = Literal[
    "list_templates",
    "get_template",
    "create_from_template",
    "preview_template",
    "validate_template",
    "apply_template_variables",
]


class TemplateInfo(BaseModel):
    """A template note and the variables it uses.

    Attributes:
        path: Path of the template note
        name: Template name (file name without '.md')
        size: Length of the template text
        variables: Distinct `{{variable}}` names in order of first use
        preview: First 200 characters of the template
    """

    path: str
    name: str
    size: int = Field(default=0, ge=0)
    variables: list[str] = Field(default_factory=list)
    preview: str = ""


class TemplateParams(BaseModel):
    """Parameters for the template_system tool."""

    operation: TemplateOperation
    template_path: str | None = Field(default=None, description="Template note, or its name inside template_folder")
    target_path: str | None = Field(default=None, description="Note to create from the template")
    template_folder: str = Field(default="Templates", description="Folder holding templates")
    variables: dict[str, str] = Field(default_factory=dict, description="User-supplied variable values")
    content: str | None = Field(default=None, description="Raw template text for apply_template_variables")
    auto_variables: bool = Field(default=True, description="Fill date, time, title and similar variables")
    overwrite: bool = False


class TemplateResult(BaseModel):
    """Outcome of one template operation."""

    operation: TemplateOperation
    template_path: str | None = None
    target_path: str | None = None
    templates: list[TemplateInfo] = Field(default_factory=list)
    content: str | None = None
    variables: list[str] = Field(default_factory=list)
    unresolved: list[str] = Field(default_factory=list)
    validation_errors: list[str] = Field(default_factory=list)
    created: bool = False
    files_searched: int = 0
    truncated: bool = False
