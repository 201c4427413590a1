"""
PO Tracker
Blueprint registry.
"""

from flask import request


def json_body() -> dict:
    """Return the request JSON object, or ``{}`` for a missing / non-object body."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}
