from .files import (
    apply_cookie_options,
    cookie_args,
    usable_cookie_file,
)

__all__ = [
    "apply_cookie_options",
    "cookie_args",
    "usable_cookie_file",
]
