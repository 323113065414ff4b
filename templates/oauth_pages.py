"""
HTML pages for the Slack install flow
"""

from html import escape
from typing import Optional

ADD_TO_SLACK_BUTTON = (
    '<img alt="Add to Slack" height="40" width="139" '
    'src="https://platform.slack-edge.com/img/add_to_slack.png" '
    'srcset="https://platform.slack-edge.com/img/add_to_slack.png 1x, '
    'https://platform.slack-edge.com/img/add_to_slack@2x.png 2x" />'
)


def _page(title: str, body: str) -> str:
    return (
        "<html>"
        "<head><link rel=\"icon\" href=\"data:,\"><title>" + escape(title) + "</title></head>"
        "<body>" + body + "</body>"
        "</html>"
    )


def render_install_page(install_url: str) -> str:
    """Landing page with an Add to Slack button pointing at the authorize URL"""
    return _page(
        "Install the Slack app",
        f'<h2>Slack App Installation</h2><p><a href="{escape(install_url, quote=True)}">{ADD_TO_SLACK_BUTTON}</a></p>',
    )


def render_success_page(app_id: Optional[str], team_id: Optional[str], enterprise_id: Optional[str], is_enterprise_install: bool) -> str:
    # Org-wide installs land on the enterprise admin page, everything else opens the app in Slack
    if is_enterprise_install and enterprise_id and app_id:
        link = f"https://app.slack.com/manage/{enterprise_id}/integrations/profile/{app_id}/workspaces/add"
    elif app_id and team_id:
        link = f"slack://app?team={team_id}&id={app_id}"
    else:
        link = "slack://open"
    return _page(
        "Installation completed",
        "<h2>Thank you!</h2>"
        f'<p>Redirecting to the Slack App... click <a href="{escape(link, quote=True)}">here</a> '
        "if you are not redirected.</p>",
    )


def render_failure_page(reason: str, install_path: str = "/slack/install") -> str:
    return _page(
        "Installation failed",
        "<h2>Oops, Something Went Wrong!</h2>"
        f"<p>Please try again from <a href=\"{escape(install_path, quote=True)}\">here</a> "
        "or contact the app owner "
        f"(reason: {escape(reason)})</p>",
    )
