import pytest
import requests
from sqlalchemy.exc import OperationalError

from conference_abstracts.extensions import db
from conference_abstracts.models.Abstract import Abstracts
from conference_abstracts.models.NotificationEvent import NotificationEvent
from conference_abstracts.services import notification_service
from conference_abstracts.services.notification_service import dispatch_pending, enqueue, render
from conference_abstracts.services.status_service import transition_status
from conference_abstracts.services.submission_service import submit_abstract
from conference_abstracts.utils.services import mail
from conference_abstracts.utils.services.mail import send_mail
from tests.factories import abstract_payload


class _Response:
    def __init__(self, status_code, text=''):
        self.status_code = status_code
        self.text = text


@pytest.fixture
def mail_gateway(app, monkeypatch):
    """Enable real sends and capture what would be posted."""
    app.config['MAIL_FLAG'] = True
    calls = []
    status = {'code': 200}

    def fake_post(url, json=None, headers=None, timeout=None):
        calls.append({'url': url, 'json': json, 'headers': headers, 'timeout': timeout})
        return _Response(status['code'])

    monkeypatch.setattr(mail.requests, 'post', fake_post)
    return calls, status


class TestSendMail:

    def test_posts_to_gateway(self, mail_gateway):
        calls, _ = mail_gateway
        assert send_mail('a@example.com', 'Hello', 'Body') == 200
        assert calls[0]['url'] == 'https://mail.example.test/send'
        assert calls[0]['headers']['Authorization'] == 'Bearer test-mail-token'
        assert calls[0]['json'] == {'to': 'a@example.com', 'subject': 'Hello', 'body': 'Body'}
        assert calls[0]['timeout'] == 5

    def test_missing_arguments(self, app):
        assert send_mail('', 'Hello', 'Body') == 400

    def test_disabled_flag_skips_send(self, app, monkeypatch):
        def boom(*args, **kwargs):
            raise AssertionError('should not be called')

        monkeypatch.setattr(mail.requests, 'post', boom)
        assert send_mail('a@example.com', 'Hello', 'Body') == 200

    def test_unconfigured_gateway(self, app):
        app.config['MAIL_FLAG'] = True
        app.config['MAIL_API_URL'] = None
        assert send_mail('a@example.com', 'Hello', 'Body') == 503

    def test_request_exception(self, app, monkeypatch):
        app.config['MAIL_FLAG'] = True

        def timeout(*args, **kwargs):
            raise requests.Timeout('gateway slow')

        monkeypatch.setattr(mail.requests, 'post', timeout)
        assert send_mail('a@example.com', 'Hello', 'Body') == 500


class TestRender:

    def test_submission_confirmation(self, app):
        subject, body = render('submission_confirmation', {
            'abstract_number': 'ABST-1-ABCDE', 'title': 'T', 'presenter_name': 'Dr. X', 'category': 'Case Report',
        })
        assert subject == 'Abstract received: ABST-1-ABCDE'
        assert 'Dear Dr. X' in body
        assert 'pending review' in body

    def test_status_update_includes_comments(self, app):
        subject, body = render('status_update', {
            'abstract_number': 'ABST-1-ABCDE', 'title': 'T', 'status': 'approved', 'comments': 'Great work',
        })
        assert subject == 'Abstract ABST-1-ABCDE is now APPROVED'
        assert 'Reviewer comments: Great work' in body

    def test_unknown_template(self, app):
        with pytest.raises(ValueError):
            render('nope', {})


class TestOutbox:

    def test_enqueue_without_recipient_is_skipped(self, app):
        assert enqueue(None, 'status_update', {}) is None
        assert NotificationEvent.query.count() == 0

    def test_dispatch_marks_sent(self, app, user_actor, mail_gateway):
        calls, _ = mail_gateway
        submit_abstract(abstract_payload(), user_actor)

        summary = dispatch_pending()

        assert summary == {'processed': 1, 'sent': 1, 'failed': 0}
        event = NotificationEvent.query.one()
        assert event.status == 'sent'
        assert event.attempts == 1
        assert event.sent_at is not None
        assert calls[0]['json']['to'] == user_actor.email

    def test_gateway_failure_marks_failed_and_retries(self, app, user_actor, mail_gateway):
        calls, status = mail_gateway
        status['code'] = 502
        submit_abstract(abstract_payload(), user_actor)

        assert dispatch_pending() == {'processed': 1, 'sent': 0, 'failed': 1}
        event = NotificationEvent.query.one()
        assert event.status == 'failed'
        assert '502' in event.last_error

        status['code'] = 200
        assert dispatch_pending()['sent'] == 1
        assert NotificationEvent.query.one().attempts == 2

    def test_gives_up_after_max_attempts(self, app, user_actor, mail_gateway):
        _, status = mail_gateway
        status['code'] = 500
        app.config['NOTIFICATIONS_MAX_ATTEMPTS'] = 2
        submit_abstract(abstract_payload(), user_actor)

        dispatch_pending()
        dispatch_pending()

        assert dispatch_pending()['processed'] == 0
        assert NotificationEvent.query.one().attempts == 2

    def test_inline_dispatch(self, app, user_actor, mail_gateway):
        calls, _ = mail_gateway
        app.config['NOTIFICATIONS_DISPATCH_INLINE'] = True

        submit_abstract(abstract_payload(), user_actor)

        assert len(calls) == 1
        assert NotificationEvent.query.one().status == 'sent'

    def test_mail_outage_never_fails_transition(self, app, user_actor, admin_actor, monkeypatch):
        app.config['NOTIFICATIONS_DISPATCH_INLINE'] = True

        def broken(*args, **kwargs):
            raise RuntimeError('gateway exploded')

        monkeypatch.setattr(notification_service, 'send_mail', broken)
        abstract = submit_abstract(abstract_payload(), user_actor)

        updated = transition_status(abstract.id, 'approved', actor=admin_actor)

        assert updated.status == 'approved'
        assert {e.status for e in NotificationEvent.query.all()} == {'failed'}

    def test_enqueue_failure_is_swallowed(self, app, user_actor, admin_actor, monkeypatch):
        abstract = submit_abstract(abstract_payload(), user_actor)

        def broken(*args, **kwargs):
            raise RuntimeError('outbox unavailable')

        monkeypatch.setattr(notification_service.notification_utils, 'create_event', broken)

        updated = transition_status(abstract.id, 'rejected', actor=admin_actor)
        assert updated.status == 'rejected'

    def test_recipient_lookup_failure_is_swallowed(self, app, user_actor, admin_actor, monkeypatch):
        abstract = submit_abstract(abstract_payload(), user_actor)
        abstract_id = abstract.id

        def lookup_fails(abstract):
            raise OperationalError('SELECT users', {}, Exception('database went away'))

        monkeypatch.setattr(notification_service, '_recipient_for', lookup_fails)

        updated = transition_status(abstract_id, 'approved', actor=admin_actor)

        assert updated.status == 'approved'
        assert db.session.get(Abstracts, abstract_id).status == 'approved'
        assert NotificationEvent.query.filter_by(template='status_update').count() == 0

    def test_submission_survives_payload_failure(self, app, user_actor, monkeypatch):
        def payload_fails(abstract):
            raise OperationalError('SELECT abstracts', {}, Exception('database went away'))

        monkeypatch.setattr(notification_service, '_abstract_payload', payload_fails)

        abstract = submit_abstract(abstract_payload(), user_actor)

        assert Abstracts.query.count() == 1
        assert abstract.status == 'pending'
        assert NotificationEvent.query.count() == 0
