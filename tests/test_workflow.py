"""
Subscription workflow tests
===========================

Drives SubscriptionWorkflow directly against a real SQLite repository with a
fake captcha verifier and notifier.
"""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from subscribekit.modules.captcha import CaptchaResult, CaptchaVerifyError
from subscribekit.modules.subscribers import (
    SubscriptionWorkflow, SubscriptionError, SubscriptionState, ConflictError,
)
from subscribekit.modules.subscribers.workflow import (
    SUBSCRIBE_MESSAGE, CONFIRM_MESSAGE, UNSUBSCRIBE_MESSAGE,
)


@pytest.fixture
def notifier():
    return MagicMock()


@pytest.fixture
def workflow(repository, captcha, notifier, clock):
    return SubscriptionWorkflow(
        repository=repository,
        captcha_verifier=captcha,
        notifier=notifier,
        cooldown_minutes=5,
        token_expires_days=7,
        now=clock,
    )


def _error_code(excinfo):
    return excinfo.value.code


# ---------------------------------------------------------------------------
# subscribe: input validation
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("email", [None, "", "   "])
def test_missing_email_never_reaches_captcha(workflow, captcha, repository, email):
    with pytest.raises(SubscriptionError) as excinfo:
        workflow.subscribe(email, "captcha-token")

    assert _error_code(excinfo) == "EMAIL_REQUIRED"
    assert excinfo.value.status_code == 400
    captcha.verify.assert_not_called()
    assert repository.list() == []


@pytest.mark.parametrize("token", [None, ""])
def test_missing_captcha_token_never_reaches_captcha(workflow, captcha, token):
    with pytest.raises(SubscriptionError) as excinfo:
        workflow.subscribe("reader@example.com", token)

    assert _error_code(excinfo) == "CAPTCHA_REQUIRED"
    captcha.verify.assert_not_called()


def test_malformed_email_rejected(workflow, captcha):
    with pytest.raises(SubscriptionError) as excinfo:
        workflow.subscribe("not..an@email", "captcha-token")

    assert _error_code(excinfo) == "EMAIL_INVALID"
    captcha.verify.assert_not_called()


@pytest.mark.parametrize("email", [42, ["reader@example.com"]])
def test_non_string_email_rejected(workflow, captcha, email):
    with pytest.raises(SubscriptionError) as excinfo:
        workflow.subscribe(email, "captcha-token")

    assert _error_code(excinfo) == "EMAIL_INVALID"
    captcha.verify.assert_not_called()


# ---------------------------------------------------------------------------
# subscribe: captcha
# ---------------------------------------------------------------------------

def test_failed_captcha_creates_no_row(workflow, captcha, repository, notifier):
    captcha.verify.return_value = CaptchaResult(success=False, error_codes=["invalid-input-response"])

    with pytest.raises(SubscriptionError) as excinfo:
        workflow.subscribe("reader@example.com", "bad-token", remote_ip="203.0.113.9")

    assert _error_code(excinfo) == "CAPTCHA_INVALID"
    assert repository.find_by_email("reader@example.com") is None
    notifier.send_confirmation.assert_not_called()
    captcha.verify.assert_called_once_with("bad-token", remote_ip="203.0.113.9")


def test_failed_captcha_does_not_touch_existing_row(workflow, captcha, repository, clock):
    workflow.subscribe("reader@example.com", "ok")
    before = repository.find_by_email("reader@example.com")

    clock.advance(minutes=10)
    captcha.verify.return_value = CaptchaResult(success=False)
    with pytest.raises(SubscriptionError):
        workflow.subscribe("reader@example.com", "bad")

    after = repository.find_by_email("reader@example.com")
    assert after.confirmation_token == before.confirmation_token
    assert after.updated_at == before.updated_at


def test_captcha_outage_is_a_server_error(workflow, captcha, repository):
    captcha.verify.side_effect = CaptchaVerifyError("connection refused")

    with pytest.raises(SubscriptionError) as excinfo:
        workflow.subscribe("reader@example.com", "token")

    assert _error_code(excinfo) == "CAPTCHA_VERIFY_ERROR"
    assert excinfo.value.status_code == 500
    assert repository.find_by_email("reader@example.com") is None


# ---------------------------------------------------------------------------
# subscribe: state handling
# ---------------------------------------------------------------------------

def test_new_subscriber_is_pending_with_token(workflow, repository, notifier, clock):
    result = workflow.subscribe("  Reader@Example.com ", "ok")

    assert result == {"message": SUBSCRIBE_MESSAGE}
    subscriber = repository.find_by_email("reader@example.com")
    assert subscriber.subscription_state == SubscriptionState.PENDING
    assert len(subscriber.confirmation_token) == 64
    assert subscriber.token_expires_at == clock() + timedelta(days=7)
    assert subscriber.subscribed_at == clock()
    notifier.send_confirmation.assert_called_once()
    sent_to = notifier.send_confirmation.call_args[0][0]
    assert sent_to.confirmation_token == subscriber.confirmation_token


def test_already_subscribed_performs_no_write(workflow, repository, notifier, clock):
    workflow.subscribe("reader@example.com", "ok")
    token = repository.find_by_email("reader@example.com").confirmation_token
    workflow.confirm(token)
    confirmed = repository.find_by_email("reader@example.com")

    clock.advance(hours=1)
    notifier.reset_mock()
    with pytest.raises(SubscriptionError) as excinfo:
        workflow.subscribe("reader@example.com", "ok")

    assert _error_code(excinfo) == "EMAIL_ALREADY_SUBSCRIBED"
    assert repository.find_by_email("reader@example.com") == confirmed
    notifier.send_confirmation.assert_not_called()


def test_pending_within_cooldown_keeps_old_token(workflow, repository, notifier, clock):
    workflow.subscribe("reader@example.com", "ok")
    first_token = repository.find_by_email("reader@example.com").confirmation_token

    clock.advance(minutes=4, seconds=59)
    with pytest.raises(SubscriptionError) as excinfo:
        workflow.subscribe("reader@example.com", "ok")

    assert _error_code(excinfo) == "PENDING_SUBSCRIPTION_COOL_DOWN"
    assert "5 minutes" in excinfo.value.message
    assert repository.find_by_email("reader@example.com").confirmation_token == first_token
    assert notifier.send_confirmation.call_count == 1


def test_pending_after_cooldown_reissues_token(workflow, repository, notifier, clock):
    workflow.subscribe("reader@example.com", "ok")
    first = repository.find_by_email("reader@example.com")

    clock.advance(minutes=5)
    result = workflow.subscribe("reader@example.com", "ok")

    second = repository.find_by_email("reader@example.com")
    assert result == {"message": SUBSCRIBE_MESSAGE}
    assert second.id == first.id
    assert second.confirmation_token != first.confirmation_token
    assert second.token_expires_at == clock() + timedelta(days=7)
    assert notifier.send_confirmation.call_count == 2
    assert len(repository.list()) == 1


def test_concurrent_insert_maps_to_already_subscribed(workflow, repository, notifier):
    repository.create = MagicMock(side_effect=ConflictError("duplicate"))

    with pytest.raises(SubscriptionError) as excinfo:
        workflow.subscribe("reader@example.com", "ok")

    assert _error_code(excinfo) == "EMAIL_ALREADY_SUBSCRIBED"
    notifier.send_confirmation.assert_not_called()


def test_mail_failure_propagates_and_keeps_row(workflow, repository, notifier):
    notifier.send_confirmation.side_effect = RuntimeError("smtp down")

    with pytest.raises(RuntimeError):
        workflow.subscribe("reader@example.com", "ok")

    subscriber = repository.find_by_email("reader@example.com")
    assert subscriber is not None
    assert subscriber.subscription_state == SubscriptionState.PENDING


# ---------------------------------------------------------------------------
# confirm
# ---------------------------------------------------------------------------

def test_confirm_requires_token(workflow):
    with pytest.raises(SubscriptionError) as excinfo:
        workflow.confirm("")
    assert _error_code(excinfo) == "TOKEN_MISSING"


def test_confirm_unknown_token(workflow):
    with pytest.raises(SubscriptionError) as excinfo:
        workflow.confirm("f" * 64)
    assert _error_code(excinfo) == "TOKEN_INVALID"


def test_confirm_activates_and_clears_token(workflow, repository, clock):
    workflow.subscribe("reader@example.com", "ok")
    token = repository.find_by_email("reader@example.com").confirmation_token

    clock.advance(hours=2)
    assert workflow.confirm(token) == {"message": CONFIRM_MESSAGE}

    subscriber = repository.find_by_email("reader@example.com")
    assert subscriber.subscription_state == SubscriptionState.SUBSCRIBED
    assert subscriber.confirmation_token is None
    assert subscriber.token_expires_at is None
    assert subscriber.confirmation_at == clock()
    assert subscriber.subscribed_at == clock()


def test_confirm_replay_is_invalid(workflow, repository):
    workflow.subscribe("reader@example.com", "ok")
    token = repository.find_by_email("reader@example.com").confirmation_token
    workflow.confirm(token)

    with pytest.raises(SubscriptionError) as excinfo:
        workflow.confirm(token)
    assert _error_code(excinfo) == "TOKEN_INVALID"


def test_confirm_expired_token_leaves_state(workflow, repository, clock):
    workflow.subscribe("reader@example.com", "ok")
    token = repository.find_by_email("reader@example.com").confirmation_token

    clock.advance(days=7, seconds=1)
    with pytest.raises(SubscriptionError) as excinfo:
        workflow.confirm(token)

    assert _error_code(excinfo) == "TOKEN_EXPIRED"
    subscriber = repository.find_by_email("reader@example.com")
    assert subscriber.subscription_state == SubscriptionState.PENDING
    assert subscriber.confirmation_token == token


def test_confirm_loses_race_to_concurrent_confirm(workflow, repository):
    workflow.subscribe("reader@example.com", "ok")
    token = repository.find_by_email("reader@example.com").confirmation_token
    repository.mark_subscribed = MagicMock(return_value=False)

    with pytest.raises(SubscriptionError) as excinfo:
        workflow.confirm(token)
    assert _error_code(excinfo) == "TOKEN_INVALID"


# ---------------------------------------------------------------------------
# unsubscribe
# ---------------------------------------------------------------------------

def test_unsubscribe_requires_email(workflow):
    with pytest.raises(SubscriptionError) as excinfo:
        workflow.unsubscribe(None)
    assert _error_code(excinfo) == "EMAIL_REQUIRED"


def test_unsubscribe_non_string_email(workflow):
    with pytest.raises(SubscriptionError) as excinfo:
        workflow.unsubscribe(123)
    assert _error_code(excinfo) == "EMAIL_INVALID"


def test_unsubscribe_unknown_email_same_message(workflow, repository):
    workflow.subscribe("known@example.com", "ok")

    unknown = workflow.unsubscribe("nobody@example.com")
    known = workflow.unsubscribe("known@example.com")

    assert unknown == known == {"message": UNSUBSCRIBE_MESSAGE}
    assert repository.find_by_email("nobody@example.com") is None


@pytest.mark.parametrize("confirm_first", [False, True])
def test_unsubscribe_from_pending_or_subscribed(workflow, repository, clock, confirm_first):
    workflow.subscribe("reader@example.com", "ok")
    if confirm_first:
        workflow.confirm(repository.find_by_email("reader@example.com").confirmation_token)

    clock.advance(minutes=1)
    workflow.unsubscribe("reader@example.com")

    subscriber = repository.find_by_email("reader@example.com")
    assert subscriber.subscription_state == SubscriptionState.UNSUBSCRIBED
    assert subscriber.unsubscribed_at == clock()
    assert subscriber.confirmation_token is None
    assert subscriber.token_expires_at is None


def test_unsubscribe_twice_is_a_noop(workflow, repository, clock):
    workflow.subscribe("reader@example.com", "ok")
    workflow.unsubscribe("reader@example.com")
    first = repository.find_by_email("reader@example.com")

    clock.advance(days=1)
    assert workflow.unsubscribe("reader@example.com") == {"message": UNSUBSCRIBE_MESSAGE}
    assert repository.find_by_email("reader@example.com") == first


# ---------------------------------------------------------------------------
# full cycle
# ---------------------------------------------------------------------------

def test_subscribe_confirm_unsubscribe_resubscribe(workflow, repository, clock):
    tokens = []

    workflow.subscribe("reader@example.com", "ok")
    tokens.append(repository.find_by_email("reader@example.com").confirmation_token)
    workflow.confirm(tokens[-1])
    workflow.unsubscribe("reader@example.com")

    clock.advance(minutes=1)
    assert workflow.subscribe("reader@example.com", "ok") == {"message": SUBSCRIBE_MESSAGE}
    resubscribed = repository.find_by_email("reader@example.com")
    tokens.append(resubscribed.confirmation_token)

    assert resubscribed.subscription_state == SubscriptionState.PENDING
    assert resubscribed.unsubscribed_at is None
    assert resubscribed.confirmation_at is None
    assert tokens[0] != tokens[1]

    workflow.confirm(tokens[-1])
    assert repository.find_by_email("reader@example.com").subscription_state == SubscriptionState.SUBSCRIBED
