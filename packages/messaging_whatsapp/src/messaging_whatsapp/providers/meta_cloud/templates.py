"""
WhatsApp Template Registry

Manages approved message templates for WhatsApp Business.
Templates must be pre-approved in the Meta Business Manager; body parameters
are positional, so the order of TemplateParameter entries matters.
"""

from dataclasses import dataclass, field
from typing import Any

TICKET_TEMPLATE = "ticket_confirmation"
BLAST_TEMPLATE = "event_details_reminder_duage"


@dataclass
class TemplateParameter:
    """A parameter in a template component."""

    name: str
    type: str = "text"  # text, image
    required: bool = True
    default: str | None = None


@dataclass
class TemplateComponent:
    """A component of a template (header, body)."""

    type: str
    parameters: list[TemplateParameter] = field(default_factory=list)
    omit_when_empty: bool = False  # Drop the component when no parameter has a value


@dataclass
class MessageTemplate:
    """
    A WhatsApp message template.

    Templates must be approved in Meta Business Manager before use.
    """

    name: str
    language: str = "id"
    category: str = "UTILITY"  # UTILITY, MARKETING
    components: list[TemplateComponent] = field(default_factory=list)
    description: str = ""

    def build_components(self, variables: dict[str, Any]) -> list[dict[str, Any]]:
        """
        Build template components payload from variables.

        Missing values fall back to the parameter default; a missing required
        value without default raises ValueError.
        """
        result = []

        for component in self.components:
            parameters = []

            for param in component.parameters:
                value = variables.get(param.name)
                if value in (None, ""):
                    value = param.default
                if value is None:
                    if param.required:
                        raise ValueError(f"Missing required parameter: {param.name}")
                    continue

                if param.type == "image":
                    parameters.append({
                        "type": "image",
                        "image": {"link": value} if isinstance(value, str) else value,
                    })
                else:
                    parameters.append({"type": "text", "text": str(value)})

            if not parameters and component.omit_when_empty:
                continue

            result.append({"type": component.type, "parameters": parameters})

        return result


class TemplateRegistry:
    """
    Registry of approved message templates.

    Templates are registered by name and can be looked up for sending.
    """

    def __init__(self) -> None:
        self._templates: dict[str, MessageTemplate] = {}
        self._register_defaults()

    def _register_defaults(self) -> None:
        """Register the ticket and blast templates."""

        # Ticket delivery: QR image header plus seven body values
        self.register(MessageTemplate(
            name=TICKET_TEMPLATE,
            language="id",
            category="UTILITY",
            description="Ticket confirmation with QR code",
            components=[
                TemplateComponent(
                    type="header",
                    parameters=[TemplateParameter(name="qr_image_url", type="image", required=False)],
                    omit_when_empty=True,
                ),
                TemplateComponent(
                    type="body",
                    parameters=[
                        TemplateParameter(name="customer_name"),
                        TemplateParameter(name="event_name"),
                        TemplateParameter(name="date"),
                        TemplateParameter(name="time"),
                        TemplateParameter(name="location", default="TBA"),
                        TemplateParameter(name="ticket_code"),
                        TemplateParameter(name="dresscode"),
                    ],
                ),
            ],
        ))

        # Blast reminder with event details
        self.register(MessageTemplate(
            name=BLAST_TEMPLATE,
            language="id",
            category="MARKETING",
            description="Event details reminder sent to blast recipients",
            components=[
                TemplateComponent(type="header"),
                TemplateComponent(
                    type="body",
                    parameters=[
                        TemplateParameter(name="participant_name", default="Peserta"),
                        TemplateParameter(name="location", default="TBA"),
                        TemplateParameter(name="address", default="TBA"),
                        TemplateParameter(name="date", default="TBA"),
                        TemplateParameter(name="time", default="TBA"),
                    ],
                ),
            ],
        ))

    def register(self, template: MessageTemplate) -> None:
        """Register a template."""
        self._templates[template.name] = template

    def get(self, name: str) -> MessageTemplate | None:
        """Get a template by name."""
        return self._templates.get(name)

    def get_or_raise(self, name: str) -> MessageTemplate:
        """Get a template by name, raising if not found."""
        template = self.get(name)
        if template is None:
            raise ValueError(f"Template not found: {name}")
        return template

    def list_templates(self) -> list[str]:
        """List all registered template names."""
        return list(self._templates.keys())

    def build_components(
        self,
        template_name: str,
        variables: dict[str, Any],
        layout: str | None = None,
    ) -> list[dict[str, Any]]:
        """
        Build components for a template.

        Templates approved under another name reuse the layout of a
        registered one (layout), so custom ticket template names still work.
        """
        template = self.get(template_name) or self.get_or_raise(layout or template_name)
        return template.build_components(variables)


# Global template registry instance
template_registry = TemplateRegistry()
