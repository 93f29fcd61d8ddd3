"""Request parsing and response helpers shared by the blueprints."""
from flask import jsonify, request

from jupiter_portal.exceptions import ValidationError


def parse_bool(value: str, default: bool = False) -> bool:
    """Parse a boolean query parameter.

    Args:
        value: String value to parse.
        default: Default value if the parameter is absent.

    Returns:
        Boolean value.
    """
    if value is None:
        return default
    return value.lower() in ('true', '1', 'yes')


def json_body() -> dict:
    """The request's JSON object, or ValidationError."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def outcome_response(outcome, data, status: int = 200):
    """JSON response for a mutation, carrying any soft warnings."""
    body = {'data': data}
    if outcome.warnings:
        body['warnings'] = outcome.warnings
    return jsonify(body), status
