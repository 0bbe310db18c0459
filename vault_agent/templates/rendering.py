"""Template variable extraction, substitution and validation."""

import re
from datetime import datetime

from vault_agent.markdown.notes import note_name

VARIABLE_PATTERN = re.compile(r"\{\{([a-zA-Z_][a-zA-Z0-9_]*)\}\}")
PLACEHOLDER_PATTERN = re.compile(r"\{\{[^}]*\}\}")
NESTED_PATTERN = re.compile(r"\{\{[^}]*\{\{[^}]*\}\}[^}]*\}\}")

AUTOMATIC_VARIABLES = (
    "date",
    "time",
    "datetime",
    "year",
    "month",
    "day",
    "filename",
    "title",
    "timestamp",
)


def extract_variables(content: str) -> list[str]:
    """Distinct variable names in order of first use.

    Examples:
        >>> extract_variables("# {{title}}\\nCreated {{date}} by {{title}}")
        ['title', 'date']
    """
    return list(dict.fromkeys(VARIABLE_PATTERN.findall(content)))


def automatic_variables(target_path: str, now: datetime) -> dict[str, str]:
    """Values for the built-in variables.

    Examples:
        >>> automatic_variables("Meetings/weekly_sync.md", datetime(2024, 6, 1, 9, 30))["title"]
        'weekly sync'
    """
    filename = note_name(target_path) or "untitled"
    return {
        "date": now.strftime("%Y-%m-%d"),
        "time": now.strftime("%H:%M:%S"),
        "datetime": now.isoformat(timespec="seconds"),
        "year": now.strftime("%Y"),
        "month": now.strftime("%m"),
        "day": now.strftime("%d"),
        "filename": filename,
        "title": re.sub(r"[-_]", " ", filename),
        "timestamp": str(int(now.timestamp() * 1000)),
    }


def render_template(
    content: str,
    variables: dict[str, str],
    target_path: str = "untitled.md",
    auto_variables: bool = True,
    now: datetime | None = None,
) -> tuple[str, list[str]]:
    """Substitute `{{name}}` placeholders.

    User variables take precedence over automatic ones. Placeholders with
    no value are left untouched.

    Returns:
        (rendered text, names of unresolved variables)
    """
    values: dict[str, str] = {}
    if auto_variables:
        values.update(automatic_variables(target_path, now or datetime.now()))
    values.update({k: v for k, v in variables.items() if v is not None})

    unresolved: list[str] = []

    def substitute(match: re.Match[str]) -> str:
        name = match.group(1)
        if name in values:
            return str(values[name])
        if name not in unresolved:
            unresolved.append(name)
        return match.group(0)

    return VARIABLE_PATTERN.sub(substitute, content), unresolved


def validate_template(content: str) -> list[str]:
    """Describe syntax problems in a template; empty when it is valid."""
    errors = [
        f"Malformed variable syntax: {placeholder}"
        for placeholder in PLACEHOLDER_PATTERN.findall(content)
        if not VARIABLE_PATTERN.fullmatch(placeholder)
    ]
    if NESTED_PATTERN.search(content):
        errors.append("Nested variables are not supported")
    return errors
