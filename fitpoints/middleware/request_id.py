"""
Request ID tracking.

Every request gets an id (taken from X-Request-ID when the caller sends one)
that is stored on flask.g, stamped on log records and echoed in the response.
"""
import re
import uuid

from flask import g, request

REQUEST_ID_HEADER = 'X-Request-ID'

_VALID_REQUEST_ID = re.compile(r'^[A-Za-z0-9._-]{1,64}$')


def init_request_id_tracking(app):
    @app.before_request
    def assign_request_id():
        incoming = request.headers.get(REQUEST_ID_HEADER, '')
        g.request_id = incoming if _VALID_REQUEST_ID.match(incoming) else uuid.uuid4().hex[:16]

    @app.after_request
    def echo_request_id(response):
        request_id = getattr(g, 'request_id', None)
        if request_id:
            response.headers[REQUEST_ID_HEADER] = request_id
        return response
