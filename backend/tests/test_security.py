# tests/test_security.py
# Slack 请求签名测试

from memeflow.core.security import (
    MAX_REQUEST_AGE_SECONDS,
    compute_slack_signature,
    verify_slack_signature,
)

SECRET = "8f742231b10e8888abcd99yyyzzz85a5"
BODY = b"payload=%7B%22type%22%3A%22block_actions%22%7D"
NOW = 1_700_000_000


def test_valid_signature():
    signature = compute_slack_signature(SECRET, str(NOW), BODY)

    assert signature.startswith("v0=")
    assert verify_slack_signature(SECRET, str(NOW), signature, BODY, now=NOW)


def test_tampered_body():
    signature = compute_slack_signature(SECRET, str(NOW), BODY)

    assert not verify_slack_signature(SECRET, str(NOW), signature, BODY + b"x", now=NOW)


def test_wrong_secret():
    signature = compute_slack_signature("other-secret", str(NOW), BODY)

    assert not verify_slack_signature(SECRET, str(NOW), signature, BODY, now=NOW)


def test_stale_timestamp():
    timestamp = str(NOW - MAX_REQUEST_AGE_SECONDS - 1)
    signature = compute_slack_signature(SECRET, timestamp, BODY)

    assert not verify_slack_signature(SECRET, timestamp, signature, BODY, now=NOW)


def test_missing_headers():
    assert not verify_slack_signature(SECRET, None, "v0=abc", BODY, now=NOW)
    assert not verify_slack_signature(SECRET, str(NOW), "", BODY, now=NOW)
    assert not verify_slack_signature(SECRET, "not-a-number", "v0=abc", BODY, now=NOW)
