from .slack_installation import SlackInstallation
from .slack_oauth_state import SlackOAuthState

__all__ = ['SlackInstallation', 'SlackOAuthState']
