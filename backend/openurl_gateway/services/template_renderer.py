# openurl_gateway/services/template_renderer.py
import logging
from pathlib import Path
from typing import Any, Callable, Dict

import jinja2

from openurl_gateway.services.pipeline_errors import TemplateNotFoundError

logger = logging.getLogger(__name__)

TEMPLATE_NAMES = ("form1", "form2", "good", "bad")


class TemplateRenderer:
    """
    Loads `<name>.html` templates from one directory.

    get_template(name) returns a callable taking the data dict and
    returning the rendered text; compiled templates are cached by jinja2.
    """

    def __init__(self, template_dir: Path):
        self.template_dir = Path(template_dir)
        self._env = jinja2.Environment(
            loader=jinja2.FileSystemLoader(str(self.template_dir)),
            autoescape=jinja2.select_autoescape(["html"]),
        )

    def get_template(self, name: str) -> Callable[[Dict[str, Any]], str]:
        try:
            template = self._env.get_template(f"{name}.html")
        except jinja2.TemplateNotFound as e:
            raise TemplateNotFoundError(
                f"Template '{name}' not found in {self.template_dir}"
            ) from e

        def render(data: Dict[str, Any]) -> str:
            return template.render(data)

        return render
