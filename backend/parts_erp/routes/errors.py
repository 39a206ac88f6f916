# Overview: Shared JSON error rendering for API blueprints.

from flask import Blueprint, current_app, request
from werkzeug.exceptions import HTTPException

from ..errors import CoreError


def register_error_handlers(bp: Blueprint) -> None:
    """
    Render CoreError as {"error", "category", "details"} with its status.

    Anything else is logged with traceback and rendered as a generic 500.
    """
    @bp.errorhandler(CoreError)
    def handle_core_error(e: CoreError):
        if e.status_code >= 500:
            current_app.logger.error("%s %s failed: %s", request.method, request.path, e.message)
        return e.to_dict(), e.status_code

    @bp.errorhandler(Exception)
    def handle_unexpected(e: Exception):
        if isinstance(e, HTTPException):
            return e
        current_app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        return {"error": "Internal server error", "category": "internal", "details": {}}, 500
