"""Errors raised by the template document engine."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence


class TemplateError(Exception):
    """Base class for template engine failures.

    ``id`` classifies the failure, ``explanation`` is the sentence shown to
    users and ``context`` an optional excerpt of the template text near the
    problem.
    """

    id = "template_error"

    def __init__(self, explanation: str, context: Optional[str] = None) -> None:
        super().__init__(explanation)
        self.explanation = explanation
        self.context = context

    @property
    def properties(self) -> Dict[str, Any]:
        props: Dict[str, Any] = {"id": self.id, "explanation": self.explanation}
        if self.context:
            props["context"] = self.context
        return props


class InvalidArchive(TemplateError):
    id = "invalid_archive"


class SerializationFailure(TemplateError):
    id = "serialization_failure"


class HeaderImageRecoveryFailure(TemplateError):
    id = "header_image_recovery_failure"


class PlaceholderError(TemplateError):
    """One problem found while compiling placeholders."""

    def __init__(self, error_id: str, explanation: str, context: Optional[str] = None) -> None:
        super().__init__(explanation, context)
        self.id = error_id


class TemplateSyntaxError(TemplateError):
    """Every placeholder problem of a template, reported together."""

    id = "multi_error"

    def __init__(self, errors: Sequence[TemplateError]) -> None:
        super().__init__("Multi error")
        self.errors: List[TemplateError] = list(errors)

    @property
    def properties(self) -> Dict[str, Any]:
        return {"id": self.id, "errors": [error.properties for error in self.errors]}


class TemplateRenderError(Exception):
    """The single human-readable failure of a template render.

    ``kind`` is the ``id`` of the underlying error, or ``"processing_error"``
    for failures outside the engine's taxonomy.
    """

    def __init__(self, message: str, kind: str = "processing_error") -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind
