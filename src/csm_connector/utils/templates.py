"""Template rendering utilities."""

import logging
from typing import Any, Dict
from jinja2 import Environment, StrictUndefined, TemplateError


logger = logging.getLogger(__name__)


def render_template(template_str: str, **context: Any) -> str:
    """Render a Jinja2 template string with given context."""
    try:
        env = Environment(undefined=StrictUndefined, keep_trailing_newline=True)
        return env.from_string(template_str).render(**context)
    except TemplateError as e:
        logger.error(f"Template rendering error: {e}")
        raise


def merge_dicts(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_dicts(result[key], value)
        else:
            result[key] = value

    return result


def set_dotted(target: Dict[str, Any], dotted_key: str, value: Any) -> Dict[str, Any]:
    """Set ``a.b.c`` style keys, creating nested dictionaries on the way."""
    keys = dotted_key.split(".")
    override: Dict[str, Any] = {keys[-1]: value}
    for key in reversed(keys[:-1]):
        override = {key: override}
    return merge_dicts(target, override)
