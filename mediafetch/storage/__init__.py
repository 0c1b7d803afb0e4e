from .local import FileStorage

__all__ = [
    "FileStorage",
]
