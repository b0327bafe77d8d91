import logging
import smtplib

import pytest

from fittrack.config import Settings
from fittrack.main import app
from fittrack.utils.diet_ai import clean_ai_response
from fittrack.utils.mailer import Mailer
from fittrack.utils.rate_limit import InMemoryRateLimiter


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_rate_limiter_window():
    clock = FakeClock()
    limiter = InMemoryRateLimiter(2, 60, clock=clock)
    assert limiter.allow('a') == (True, 0)
    clock.now += 10
    assert limiter.allow('a') == (True, 0)
    allowed, retry_after = limiter.allow('a')
    assert not allowed
    assert retry_after == 50
    # other keys have their own budget
    assert limiter.allow('b')[0]
    # the first hit leaves the window after 60s
    clock.now += 50
    assert limiter.allow('a')[0]
    assert not limiter.allow('a')[0]


def test_rate_limiter_reset():
    limiter = InMemoryRateLimiter(1, 60, clock=FakeClock())
    limiter.allow('a')
    limiter.allow('b')
    limiter.reset('a')
    assert limiter.allow('a')[0]
    assert not limiter.allow('b')[0]
    limiter.reset()
    assert limiter.allow('b')[0]


def test_global_rate_limit_middleware(client):
    app.state.rate_limiter = InMemoryRateLimiter(2, 900)
    assert client.get('/health').status_code == 200
    assert client.get('/health').status_code == 200
    r = client.get('/health')
    assert r.status_code == 429
    assert r.json() == {'error': 'Too many requests, please try again later.'}
    assert 'Retry-After' in r.headers


@pytest.mark.parametrize('raw,expected', [
    ('{"a": 1}', '{"a": 1}'),
    ('```json\n{"a": 1}\n```', '{"a": 1}'),
    ('```\n[1, 2,]\n```', '[1, 2]'),
    ('{“a”: “b”,\n}', '{"a": "b"}'),
    ('', ''),
])
def test_clean_ai_response(raw, expected):
    assert clean_ai_response(raw) == expected


def test_mailer_without_smtp_is_a_no_op(monkeypatch, caplog):
    monkeypatch.delenv('SMTP_HOST', raising=False)
    mailer = Mailer(Settings())
    with caplog.at_level(logging.WARNING, logger='fittrack.mailer'):
        assert mailer.send_welcome('sam@example.com', 'sam') is False
    assert 'smtp not configured' in caplog.text


class FakeSMTP:
    sent = []
    fail_login = False

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        pass

    def login(self, user, password):
        if FakeSMTP.fail_login:
            raise smtplib.SMTPAuthenticationError(535, b'bad credentials')

    def send_message(self, msg):
        FakeSMTP.sent.append(msg)


@pytest.fixture
def smtp(monkeypatch):
    monkeypatch.setenv('SMTP_HOST', 'smtp.example.com')
    monkeypatch.setenv('SMTP_USER', 'mailer')
    monkeypatch.setenv('SMTP_PASSWORD', 'secret')
    monkeypatch.setattr(smtplib, 'SMTP', FakeSMTP)
    FakeSMTP.sent = []
    FakeSMTP.fail_login = False
    return FakeSMTP


def test_mailer_sends_reset_code(smtp):
    mailer = Mailer(Settings())
    assert mailer.send_reset_code('sam@example.com', 'sam', '123456', 10) is True
    msg = smtp.sent[0]
    assert msg['To'] == 'sam@example.com'
    assert msg['Subject'] == 'Your FitTrack Pro Password Reset Code'
    text, html = [part.get_payload(decode=True).decode() for part in msg.get_payload()]
    assert '123456' in text
    assert '123456' in html and 'Expires in 10 minutes' in html


def test_mailer_swallows_auth_failures(smtp, caplog):
    smtp.fail_login = True
    with caplog.at_level(logging.ERROR, logger='fittrack.mailer'):
        assert Mailer(Settings()).send_welcome('sam@example.com', 'sam') is False
    assert 'authentication failed' in caplog.text
    assert smtp.sent == []


def test_rate_limiter_forgets_idle_clients():
    clock = FakeClock()
    limiter = InMemoryRateLimiter(5, 60, clock=clock)
    for ip in ('10.0.0.1', '10.0.0.2', '10.0.0.3'):
        limiter.allow(ip)
    assert limiter.tracked_keys() == 3

    clock.now += 61
    limiter.allow('10.0.0.4')
    assert limiter.tracked_keys() == 1
