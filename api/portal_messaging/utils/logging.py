import re

_EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
_PHONE_RE = re.compile(r"\b(?:\+\d{1,3}[-. ]?)?\(?\d{3}\)?[-. ]?\d{3}[-. ]?\d{3,4}\b")


def redact_contact_details(text: str) -> str:
    """
    Redact contact details that candidates and employers commonly paste into
    messages: email addresses and phone numbers.
    """
    text = _EMAIL_RE.sub("[EMAIL]", text)
    text = _PHONE_RE.sub("[PHONE]", text)
    return text


def preview(text: str, limit: int = 40) -> str:
    """Short, redacted rendering of message content for log lines."""
    flat = " ".join((text or "").split())
    redacted = redact_contact_details(flat)
    if len(redacted) <= limit:
        return redacted
    return redacted[:limit].rstrip() + "..."
