# api/forms.py
"""
Form endpoints

One blueprint per form definition:

    POST <prefix><submit path>  -> validate, store, mail, respond
    GET  <prefix><list path>    -> stored submissions (diagnostics, unauthenticated)
"""

from flask import Blueprint, request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from api.responses import listing_response, success_response
from middleware.rate_limiting import limit_contact
from services.submission_pipeline import SubmissionPipeline


def request_payload():
    """Read JSON or url-encoded form data; anything else yields an empty payload"""
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()


def create_form_blueprint(pipeline: SubmissionPipeline, limiter: Limiter) -> Blueprint:
    form = pipeline.form
    bp = Blueprint(form.name, __name__)

    def submit():
        submission = pipeline.submit(request_payload(), client_ip=get_remote_address())
        return success_response(form.success_message, submission)

    def list_submissions():
        return listing_response(pipeline.store.list())

    # Flask-Limiter tracks decorated views by name, so each form needs its own
    submit.__name__ = submit.__qualname__ = f"submit_{form.name}"
    list_submissions.__name__ = list_submissions.__qualname__ = f"list_{form.name}"

    view = limit_contact(limiter, submit) if form.rate_limited else submit
    for path in form.submit_paths:
        bp.add_url_rule(path, endpoint='submit', view_func=view, methods=['POST'])
    bp.add_url_rule(form.list_path, endpoint='list', view_func=list_submissions, methods=['GET'])

    return bp
