import logging

from services.redaction import redact_dict, redact_text


def test_redact_text_masks_email():
    assert redact_text("paid to alice@example.com") == "paid to a***@example.com"


def test_redact_text_drops_lines_with_secrets():
    assert redact_text("key sk_test_abc123 rejected") == "[REDACTED]"
    assert redact_text("Authorization: Bearer abcdef") == "[REDACTED]"
    assert redact_text("secret whsec_123") == "[REDACTED]"


def test_redact_dict_masks_payout_details():
    payload = {
        "email": "alice@example.com",
        "accountId": "acct_1AbC",
        "client_secret": "shh",
        "recipient": {"email": "bob@example.com", "firstName": "Bob"},
        "amount": 10.0,
    }
    redacted = redact_dict(payload)
    assert redacted["email"] == "a***@example.com"
    assert redacted["accountId"] == "[REDACTED]"
    assert redacted["client_secret"] == "[REDACTED]"
    assert redacted["recipient"] == {"email": "b***@example.com", "firstName": "Bob"}
    assert redacted["amount"] == 10.0


def test_log_line_uses_redaction_helper(caplog):
    logger = logging.getLogger("redaction-test")
    caplog.set_level(logging.INFO)
    logger.info("payload=%s", redact_text("gift card for alice@example.com"))
    assert "alice@example.com" not in caplog.text
