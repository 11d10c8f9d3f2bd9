"""SAT file loading: variable rendering, YAML parsing and section filtering."""

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from jinja2 import TemplateError
from pydantic import ValidationError
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from csm_connector.errors import SatFileError
from csm_connector.models.satfile import SatFile
from csm_connector.utils.templates import merge_dicts, render_template, set_dotted


logger = logging.getLogger(__name__)


def parse_cli_vars(pairs: Iterable[str]) -> Dict[str, Any]:
    """Turn ``a.b=value`` pairs into a nested dictionary."""
    values: Dict[str, Any] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise SatFileError(f"Invalid variable '{pair}', expected KEY=VALUE")
        values = set_dotted(values, key.strip(), value)
    return values


class SatFileLoader:
    """Reads SAT files, rendering them with user variables first."""

    def __init__(self):
        """Initialize loader."""
        self.yaml = YAML(typ="safe")

    def load_vars(self, vars_file: Optional[Path] = None, cli_vars: Iterable[str] = ()) -> Dict[str, Any]:
        """Variables from a vars file, overridden by command line pairs."""
        values: Dict[str, Any] = {}
        if vars_file is not None:
            data = self._read_yaml(Path(vars_file).read_text(), str(vars_file))
            if data is not None and not isinstance(data, dict):
                raise SatFileError(f"Vars file {vars_file} must contain a mapping")
            values = dict(data or {})
            logger.debug(f"Loaded variables from {vars_file}")
        return merge_dicts(values, parse_cli_vars(cli_vars))

    def loads(self, content: str, variables: Optional[Dict[str, Any]] = None, source: str = "<string>") -> SatFile:
        """Render and parse SAT file content."""
        try:
            rendered = render_template(content, **(variables or {}))
        except TemplateError as e:
            raise SatFileError(f"Could not render SAT file {source}: {e}") from e

        data = self._read_yaml(rendered, source)
        if data is None:
            raise SatFileError(f"SAT file {source} is empty")
        if not isinstance(data, dict):
            raise SatFileError(f"SAT file {source} must contain a mapping")

        try:
            return SatFile(**data)
        except ValidationError as e:
            logger.error(f"Invalid SAT file {source}: {e}")
            raise SatFileError(f"Invalid SAT file {source}:\n{e}") from e

    def load(
        self,
        path: Path,
        vars_file: Optional[Path] = None,
        cli_vars: Iterable[str] = (),
        image_only: bool = False,
        session_template_only: bool = False,
    ) -> SatFile:
        """Load a SAT file from disk and trim it to the requested sections."""
        path = Path(path)
        if not path.exists():
            raise SatFileError(f"SAT file not found: {path}")

        logger.info(f"Loading SAT file {path}")
        variables = self.load_vars(vars_file, cli_vars)
        sat_file = self.loads(path.read_text(), variables, source=str(path))
        return sat_file.filter(image_only=image_only, session_template_only=session_template_only)

    def _read_yaml(self, content: str, source: str) -> Any:
        try:
            return self.yaml.load(content)
        except YAMLError as e:
            raise SatFileError(f"Could not parse {source}: {e}") from e
