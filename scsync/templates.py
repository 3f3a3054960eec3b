"""Local path templates for synchronized repositories."""

import os
from typing import Mapping


def render_template(template: str, variables: Mapping[str, str]) -> str:
    """
    Replace every `{Key}` placeholder with its value.

    Unknown placeholders are left as they are so a mistyped key shows up
    in the resulting path instead of silently disappearing.
    """
    rendered = template
    for key, value in variables.items():
        rendered = rendered.replace(f"{{{key}}}", value)
    return rendered


def render_path_template(template: str, variables: Mapping[str, str]) -> str:
    """Render a path template and return the absolute, normalized path."""
    return os.path.abspath(render_template(template, variables))
