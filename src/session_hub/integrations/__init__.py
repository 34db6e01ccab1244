from session_hub.integrations.github_client import GithubClient
from session_hub.integrations.window_channel import CLOSE_MESSAGE, RedirectMessage, WindowChannel

__all__ = ["CLOSE_MESSAGE", "GithubClient", "RedirectMessage", "WindowChannel"]
