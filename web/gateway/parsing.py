"""Request parsing helpers shared by the API views.

Both helpers raise ``ValidationFailed`` so malformed input is reported as
``400 VALIDATION_FAILED`` before any domain code runs.
"""

import json

from pydantic import ValidationError

from retailhub.errors import ValidationFailed


def parse_body(schema, data):
    """Validate ``data`` against a Pydantic schema.

    Returns:
        The validated schema instance.

    Raises:
        ValidationFailed: With Pydantic's error list in ``errors``.
    """
    try:
        return schema.model_validate(data)
    except ValidationError as e:
        raise ValidationFailed(errors=json.loads(e.json(include_url=False))) from None


def int_param(request, name: str, default: int) -> int:
    """Read a positive integer query parameter."""
    raw = request.GET.get(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValidationFailed(f"{name} must be an integer") from None
    if value < 1:
        raise ValidationFailed(f"{name} must be positive")
    return value
