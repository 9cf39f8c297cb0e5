"""Template expansion adapter.

Expands ${VAR} references against the build variables, which mirrors how CI
jobs reference their environment in shell steps.
"""

from __future__ import annotations

from string import Template

from core.errors import TemplateExpansionError
from core.models import BuildContext


def _template_variables(context: BuildContext) -> dict[str, str]:
    variables = {
        "PROJECT_NAME": context.project_name,
        "BUILD_NUMBER": str(context.number),
    }
    variables.update(context.variables)
    return variables


class EnvTemplateExpander:
    """Expands templates; one value per non-blank line of the result."""

    def expand(self, template: str, context: BuildContext) -> list[str]:
        try:
            expanded = Template(template).substitute(_template_variables(context))
        except KeyError as exc:
            raise TemplateExpansionError(f"Unknown variable {exc.args[0]} in '{template}'") from exc
        except ValueError as exc:
            raise TemplateExpansionError(f"Malformed template '{template}': {exc}") from exc
        return [line.strip() for line in expanded.splitlines() if line.strip()]
