from .application import build_scheduler, create_app, start_api

__all__ = [
    "build_scheduler",
    "create_app",
    "start_api",
]
