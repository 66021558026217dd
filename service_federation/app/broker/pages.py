"""
HTML error pages shown to the browser when a federated login fails.
"""

from html import escape

from fastapi.responses import HTMLResponse

from ..errors import (
    INTERACTION_REQUIRED,
    LOGIN_REQUIRED,
    MISSING_STATE_MESSAGE,
    UNEXPECTED_ERROR_MESSAGE,
)


MESSAGES = {
    MISSING_STATE_MESSAGE: "Missing state parameter in response from identity provider.",
    UNEXPECTED_ERROR_MESSAGE: "Unexpected error when authenticating with identity provider.",
    LOGIN_REQUIRED: "Login is required at the identity provider.",
    INTERACTION_REQUIRED: "The identity provider requires user interaction to continue.",
}

_PAGE = """<!DOCTYPE html>
<html lang="en">
<head><meta charset="utf-8"><title>Login failed</title></head>
<body>
<h1>We are sorry...</h1>
<p id="error-message" data-message-key="{key}">{text}</p>
</body>
</html>
"""


def render_error_page(message_key: str, status_code: int = 502) -> HTMLResponse:
    """Render the error page for a message key; unknown keys are shown verbatim."""
    text = MESSAGES.get(message_key, message_key)
    return HTMLResponse(
        content=_PAGE.format(key=escape(message_key, quote=True), text=escape(text)),
        status_code=status_code,
    )
