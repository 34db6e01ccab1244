from session_hub.store.token_store import TokenStore

__all__ = ["TokenStore"]
