"""Service error taxonomy.

Hard failures raised by the collaborators of the link issuer. Business
outcomes (empty render, unknown or inactive account, save failure) are not
exceptions; they are reported through IssueResult.
"""

__all__ = [
    "MailDeliveryError",
    "TemplateRenderError",
]


class TemplateRenderError(Exception):
    """Template could not be rendered.

    Raised for missing templates and template runtime errors. The original
    exception is chained as ``__cause__``.
    """

    def __init__(self, template_name: str, message: str) -> None:
        """Initialize TemplateRenderError.

        Args:
            template_name: Name of the template that failed.
            message: Error description.
        """
        super().__init__(f"Failed to render '{template_name}': {message}")
        self.template_name = template_name


class MailDeliveryError(Exception):
    """Mail transport could not hand off a message.

    Never surfaced to callers of the issuer; dispatch failures are logged.
    """

    pass
