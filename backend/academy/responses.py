# Overview: The {success, data, error} JSON envelope used by admin and portal routes.

from __future__ import annotations

from flask import jsonify

from .validation import DomainError


def ok(data=None, status: int = 200, **extra):
    body = {"success": True}
    if data is not None:
        body["data"] = data
    body.update(extra)
    return jsonify(body), status


def fail(error: str, status: int = 400, **extra):
    body = {"success": False, "error": error}
    body.update(extra)
    return jsonify(body), status


def domain_error(exc: DomainError):
    return fail(str(exc), exc.status_code)
