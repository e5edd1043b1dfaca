"""
End-to-end tests for the form endpoints through the Flask test client.
"""
import atexit

import pytest

from app import create_app
from core.errors import ConfigurationError
from tests.fakes import FakeTransport, html_part

CONTACT_SUBMIT = '/api/contact/submit'
CONTACT_LIST = '/api/contact/submissions'
SIGNUP_LIST = '/api/signup/signups'
SUBDOMAIN_SUBMIT = '/subdomain-contact/submit'
SUBDOMAIN_LIST = '/subdomain-contact/submissions'


class TestContactForm:

    def test_accepts_valid_submission(self, client, transport, contact_payload):
        response = client.post(CONTACT_SUBMIT, json=contact_payload)

        assert response.status_code == 200
        body = response.get_json()
        assert body['success'] is True
        assert body['message'] == 'Thank you for contacting us! We will get back to you soon.'
        assert body['data']['name'] == 'Asha Rao'
        assert body['data']['email'] == 'asha@example.com'

        listing = client.get(CONTACT_LIST).get_json()
        assert listing['count'] == 1
        stored = listing['data'][0]
        assert stored['id'] == body['data']['id']
        assert stored['status'] == 'completed'
        assert stored['ip'] == '127.0.0.1'
        assert stored['error'] is None

        assert transport.recipients == ['admin@example.com', 'asha@example.com']

    def test_admin_notification_replies_to_submitter(self, client, transport, contact_payload):
        client.post(CONTACT_SUBMIT, json=contact_payload)

        admin = next(m for m in transport.messages if m['To'] == 'admin@example.com')
        assert admin['Reply-To'] == 'asha@example.com'
        assert 'Anxiety' in str(admin['Subject'])
        assert 'Evenings work best.' in html_part(admin)

    def test_missing_field_is_reported(self, client, transport, contact_payload):
        del contact_payload['age']
        response = client.post(CONTACT_SUBMIT, json=contact_payload)

        assert response.status_code == 400
        body = response.get_json()
        assert body['success'] is False
        assert body['message'] == 'Validation failed'
        assert body['errors'] == [{'field': 'age', 'message': 'Age is required'}]
        assert client.get(CONTACT_LIST).get_json()['count'] == 0
        assert transport.messages == []

    def test_email_is_normalized(self, client, contact_payload):
        contact_payload['email'] = 'Foo@EXAMPLE.com '
        response = client.post(CONTACT_SUBMIT, json=contact_payload)

        assert response.status_code == 200
        assert response.get_json()['data']['email'] == 'foo@example.com'

    def test_markup_is_escaped_before_storage(self, client, transport, contact_payload):
        contact_payload['message'] = '<script>alert("x")</script>'
        client.post(CONTACT_SUBMIT, json=contact_payload)

        stored = client.get(CONTACT_LIST).get_json()['data'][0]
        assert stored['message'] == '&lt;script&gt;alert(&quot;x&quot;)&lt;/script&gt;'
        for message in transport.messages:
            assert '<script>' not in html_part(message)

    def test_accepts_url_encoded_form(self, client, contact_payload):
        response = client.post(CONTACT_SUBMIT, data=contact_payload)
        assert response.status_code == 200

    def test_rate_limited_after_five_attempts(self, client, contact_payload):
        for _ in range(5):
            assert client.post(CONTACT_SUBMIT, json=contact_payload).status_code == 200

        response = client.post(CONTACT_SUBMIT, json=contact_payload)
        assert response.status_code == 429
        assert response.get_json() == {
            'success': False,
            'message': 'Too many contact attempts, please try again later',
        }
        assert client.get(CONTACT_LIST).get_json()['count'] == 5

    def test_rate_limit_counts_each_form_separately(self, client, contact_payload, subdomain_payload):
        for _ in range(5):
            client.post(CONTACT_SUBMIT, json=contact_payload)

        assert client.post(SUBDOMAIN_SUBMIT, json=subdomain_payload).status_code == 200

    def test_admin_failure_marks_submission_failed(self, make_app, contact_payload):
        app = make_app(transport=FakeTransport(fail_for={'admin@example.com'}))
        client = app.test_client()

        response = client.post(CONTACT_SUBMIT, json=contact_payload)

        assert response.status_code == 500
        body = response.get_json()
        assert body['success'] is False
        assert body['message'] == 'Failed to process your submission. Please try again later.'
        stored = client.get(CONTACT_LIST).get_json()['data'][0]
        assert stored['status'] == 'failed'
        assert 'admin@example.com' in stored['error']

    def test_error_detail_hidden_in_production(self, make_app, contact_payload):
        app = make_app(transport=FakeTransport(fail_for={'admin@example.com'}), APP_ENV='production')
        response = app.test_client().post(CONTACT_SUBMIT, json=contact_payload)

        assert response.status_code == 500
        assert 'error' not in response.get_json()

    def test_user_confirmation_failure_still_succeeds(self, make_app, contact_payload):
        app = make_app(transport=FakeTransport(fail_for={'asha@example.com'}))
        client = app.test_client()

        response = client.post(CONTACT_SUBMIT, json=contact_payload)

        assert response.status_code == 200
        stored = client.get(CONTACT_LIST).get_json()['data'][0]
        assert stored['status'] == 'completed'
        assert 'asha@example.com' in stored['error']

    def test_unconfigured_mail_returns_503(self, make_app, contact_payload):
        app = make_app(transport=None, EMAIL_USER=None, EMAIL_PASS=None)
        client = app.test_client()

        response = client.post(CONTACT_SUBMIT, json=contact_payload)

        assert response.status_code == 503
        assert response.get_json()['message'] == ConfigurationError.public_message
        assert client.get(CONTACT_LIST).get_json()['data'][0]['status'] == 'failed'

    def test_listing_is_idempotent(self, client, contact_payload):
        client.post(CONTACT_SUBMIT, json=contact_payload)

        first = client.get(CONTACT_LIST).get_json()
        second = client.get(CONTACT_LIST).get_json()
        assert first == second


class TestSignupForm:

    @pytest.mark.parametrize('path', ['/api/signup', '/api/signup/signup'])
    def test_both_paths_accept_signups(self, client, signup_payload, path):
        response = client.post(path, json=signup_payload)

        assert response.status_code == 200
        assert response.get_json()['message'] == 'Thank you for signing up! We will contact you soon.'

        stored = client.get(SIGNUP_LIST).get_json()['data'][0]
        assert stored['source'] == 'website_signup'
        assert stored['ip'] is None

    def test_reports_every_invalid_field(self, client):
        response = client.post('/api/signup', json={'name': 'Al', 'email': 'bad', 'phone': '12'})

        assert response.status_code == 400
        assert response.get_json()['errors'] == [
            {'field': 'name', 'message': 'Name must be at least 3 characters'},
            {'field': 'email', 'message': 'Email is invalid'},
            {'field': 'phone', 'message': 'Phone number must be 10 digits'},
        ]

    def test_signup_is_not_rate_limited(self, client, signup_payload):
        for _ in range(7):
            assert client.post('/api/signup', json=signup_payload).status_code == 200


class TestSubdomainContactForm:

    def test_records_ip_and_mails_admin(self, client, transport, subdomain_payload):
        response = client.post(SUBDOMAIN_SUBMIT, json=subdomain_payload)

        assert response.status_code == 200
        stored = client.get(SUBDOMAIN_LIST).get_json()['data'][0]
        assert stored['ip'] == '127.0.0.1'
        assert stored['phone'] is None

        admin = next(m for m in transport.messages if m['To'] == 'admin@example.com')
        assert '127.0.0.1' in html_part(admin)

    def test_name_length_limit(self, client, subdomain_payload):
        subdomain_payload['name'] = 'x' * 101
        response = client.post(SUBDOMAIN_SUBMIT, json=subdomain_payload)

        assert response.status_code == 400
        assert response.get_json()['errors'][0]['field'] == 'name'

    def test_old_submissions_are_swept(self, app, client, subdomain_payload):
        from datetime import timedelta
        from core.models import utcnow

        client.post(SUBDOMAIN_SUBMIT, json=subdomain_payload)
        assert app.sweeper.run_once(now=utcnow() + timedelta(hours=25)) == 1
        assert client.get(SUBDOMAIN_LIST).get_json()['count'] == 0


class TestApplication:

    def test_health(self, client, contact_payload):
        client.post(CONTACT_SUBMIT, json=contact_payload)

        body = client.get('/health').get_json()
        assert body['status'] == 'healthy'
        assert body['mail_configured'] is True
        assert body['submissions'] == {'contact': 1, 'signup': 0, 'subdomain_contact': 0}

    def test_unknown_route_is_json_404(self, client):
        response = client.get('/api/unknown')
        assert response.status_code == 404
        assert response.get_json()['success'] is False

    def test_wrong_method_is_json_405(self, client):
        response = client.get(CONTACT_SUBMIT)
        assert response.status_code == 405
        assert response.get_json()['success'] is False

    def test_security_headers(self, client):
        response = client.get('/health')
        assert response.headers['X-Content-Type-Options'] == 'nosniff'
        assert response.headers['X-Frame-Options'] == 'DENY'

    def test_cors_headers(self, client):
        response = client.get('/health', headers={'Origin': 'https://emotionease.in'})
        assert response.headers['Access-Control-Allow-Origin'] in ('*', 'https://emotionease.in')

    def test_apps_do_not_share_state(self, make_app, contact_payload):
        first, second = make_app(), make_app()
        first.test_client().post(CONTACT_SUBMIT, json=contact_payload)

        assert second.test_client().get(CONTACT_LIST).get_json()['count'] == 0

    def test_shutdown_stops_threads_and_releases_exit_hook(self, monkeypatch, contact_payload):
        hooks = []
        monkeypatch.setattr(atexit, 'register', hooks.append)
        monkeypatch.setattr(atexit, 'unregister', hooks.remove)

        app = create_app('testing', transport=FakeTransport(), SWEEP_ENABLED=True)
        app.test_client().post(CONTACT_SUBMIT, json=contact_payload)
        assert len(hooks) == 1
        assert app.dispatcher.running and app.sweeper.running

        app.shutdown()

        assert hooks == []
        assert not app.dispatcher.running
        assert not app.sweeper.running
