"""
Tab target URLs — steer a tab back to the page that capture understands.

Sign-in, marketing and error pages carry no messages; these resolvers map
whatever a tab currently shows to the web client URL for that service.
"""

from __future__ import annotations

from urllib.parse import urlsplit

SLACK_CLIENT_URL = "https://app.slack.com/client"
TEAMS_WEB_URL = "https://teams.microsoft.com/v2/"
OUTLOOK_MAIL_URL = "https://outlook.office.com/mail/"

# Outlook clouds that keep their own host; first match wins
_OUTLOOK_HOSTS = (
    ("outlook.office365.us", "https://outlook.office365.us/mail/"),
    ("outlook.office.com", "https://outlook.office.com/mail/"),
    ("outlook.live.com", "https://outlook.live.com/mail/"),
)


def _split(url: str | None) -> tuple[str, str] | None:
    if not url or not isinstance(url, str):
        return None
    try:
        parts = urlsplit(url)
    except ValueError:
        return None
    if not parts.scheme or not parts.hostname:
        return None
    return parts.hostname.lower(), (parts.path or "").lower()


def resolve_slack_client_url(current_url: str | None) -> str:
    parsed = _split(current_url)
    if parsed is None:
        return SLACK_CLIENT_URL
    host, path = parsed
    if host == "app.slack.com" and path.startswith("/client"):
        return current_url
    return SLACK_CLIENT_URL


def resolve_teams_web_url(current_url: str | None) -> str:
    parsed = _split(current_url)
    if parsed is None:
        return TEAMS_WEB_URL
    host, path = parsed
    if host == "teams.microsoft.com" and not path.startswith("/error"):
        return current_url
    return TEAMS_WEB_URL


def resolve_outlook_mail_url(current_url: str | None) -> str:
    parsed = _split(current_url)
    if parsed is None:
        return OUTLOOK_MAIL_URL
    host, path = parsed
    for needle, mail_url in _OUTLOOK_HOSTS:
        if needle in host:
            return current_url if path.startswith("/mail") else mail_url
    return OUTLOOK_MAIL_URL


RESOLVERS = {
    "slack": resolve_slack_client_url,
    "teams": resolve_teams_web_url,
    "office": resolve_outlook_mail_url,
}


def resolve_target_url(tab_id: str, current_url: str | None) -> str | None:
    """Capture-ready URL for a tab, or None when the tab needs no steering."""
    resolver = RESOLVERS.get(tab_id)
    return resolver(current_url) if resolver else None
