"""Message templates for testimonial reminders.

Template keys are opaque to the scheduler; only the gateway resolves them.
Unknown keys fall back to the default request.
"""

from dataclasses import dataclass

from reminder_engine.models.enums import ReminderChannel

DEFAULT_TEMPLATE_KEY = "testimonial_request"


@dataclass(frozen=True)
class RenderedMessage:
    """A message ready to hand to a channel sender."""

    subject: str
    body: str


class _BlankDefaults(dict):
    def __missing__(self, key: str) -> str:
        return ""


TEMPLATES: dict[str, dict[ReminderChannel, RenderedMessage]] = {
    "testimonial_request": {
        ReminderChannel.EMAIL: RenderedMessage(
            subject="Would you share a few words about {project_name}?",
            body=(
                "Hi {client_name},\n\n"
                "Thanks for working with us on {project_name}. "
                "We'd love to hear how it went. It only takes a minute:\n\n"
                "{testimonial_url}\n\n"
                "Thank you!"
            ),
        ),
        ReminderChannel.SMS: RenderedMessage(
            subject="",
            body="Hi {client_name}, could you leave a quick testimonial? {testimonial_url}",
        ),
    },
    "testimonial_follow_up": {
        ReminderChannel.EMAIL: RenderedMessage(
            subject="A quick reminder about your testimonial",
            body=(
                "Hi {client_name},\n\n"
                "Just a friendly nudge in case our last note got buried. "
                "Your feedback helps us a lot:\n\n"
                "{testimonial_url}"
            ),
        ),
        ReminderChannel.SMS: RenderedMessage(
            subject="",
            body="Friendly reminder, {client_name}: {testimonial_url}",
        ),
    },
}


def render_message(
    channel: ReminderChannel, template_key: str | None, payload: dict
) -> RenderedMessage:
    """Render the template for ``template_key`` on ``channel`` with ``payload``."""
    variants = TEMPLATES.get(template_key or DEFAULT_TEMPLATE_KEY) or TEMPLATES[DEFAULT_TEMPLATE_KEY]
    template = variants[channel]
    values = _BlankDefaults(payload)
    values.setdefault("project_name", "your project")
    return RenderedMessage(
        subject=template.subject.format_map(values),
        body=template.body.format_map(values),
    )
