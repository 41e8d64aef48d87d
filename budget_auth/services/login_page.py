# budget_auth/services/login_page.py
from typing import Dict, Optional

from jinja2 import BaseLoader, Environment, select_autoescape

LOGIN_TEMPLATE = """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>Sign in</title>
  <style>
    body { font-family: sans-serif; background: #f4f5f7; }
    form { max-width: 320px; margin: 10vh auto; padding: 2em; background: #fff; border-radius: 6px; }
    label, input, button { display: block; width: 100%; margin-bottom: .8em; }
    .error { color: #b00020; }
  </style>
</head>
<body>
  <form method="post" action="/login">
    <h1>Sign in</h1>
    {% if error %}<p class="error">{{ error }}</p>{% endif %}
    <label for="username">Username</label>
    <input id="username" name="username" autocomplete="username" required>
    <label for="password">Password</label>
    <input id="password" name="password" type="password" autocomplete="current-password" required>
    <input type="hidden" name="return_to" value="{{ return_to }}">
    <button type="submit">Sign in</button>
  </form>
</body>
</html>
"""

ERROR_MESSAGES: Dict[str, str] = {
    "invalid_credentials": "Invalid username or password.",
    "missing_fields": "Username and password are required.",
}

_env = Environment(
    loader=BaseLoader(),
    autoescape=select_autoescape(["html", "xml"]),
    enable_async=False,
)
_template = _env.from_string(LOGIN_TEMPLATE)


def safe_return_to(value: Optional[str], default: str = "/docs") -> str:
    """Only same-site absolute paths; anything else falls back to ``default``."""
    if not value or not value.startswith("/") or value.startswith("//") or "\\" in value:
        return default
    return value


def render_login_page(return_to: Optional[str] = None, error: Optional[str] = None) -> str:
    return _template.render(
        return_to=safe_return_to(return_to),
        error=ERROR_MESSAGES.get(error) if error else None,
    )
