# app/webhooks/errors.py


class WebhookSignatureError(Exception):
    """Signature header missing, malformed or not matching the shared secret."""


class WebhookPayloadError(Exception):
    """Signature verified but the envelope is not usable."""
