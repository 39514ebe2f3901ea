"""
JSON response helpers shared by the API blueprints
"""

from flask import jsonify, request


def json_success(status_code=200, **payload):
    return jsonify({'success': True, **payload}), status_code


def json_error(message, status_code, error=None, **extra):
    payload = {'success': False, 'message': message}
    if error:
        payload['error'] = error
    payload.update(extra)
    return jsonify(payload), status_code


def form_errors(form):
    """400 response carrying the WTForms field errors"""
    return json_error('Validation failed', 400, error='VALIDATION_ERROR', errors=form.errors)


def request_payload():
    return request.get_json(silent=True) or {}


def form_values(form, payload=None):
    """
    Field values for the keys present in the request body only, so partial
    updates leave the other columns alone.
    """
    payload = request_payload() if payload is None else payload
    return {name: form[name].data for name in payload if name in form._fields}


def confirmation_required(preview):
    """409 asking the client to repeat the destructive call with {"confirm": true}"""
    if request_payload().get('confirm') is True:
        return None
    return json_error(
        preview.get('message', 'Please confirm this action'),
        409,
        error='CONFIRMATION_REQUIRED',
        confirmation=preview,
    )


def id_list(value):
    """Integer ids from a JSON list; anything malformed yields None"""
    if value is None:
        return []
    if not isinstance(value, list):
        return None
    ids = []
    for item in value:
        if isinstance(item, bool) or not isinstance(item, (int, str)):
            return None
        try:
            ids.append(int(item))
        except ValueError:
            return None
    return ids
