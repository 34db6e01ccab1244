from session_hub.api.routes import register_session_routes

__all__ = ["register_session_routes"]
