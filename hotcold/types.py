import os
from functools import partial

import typeguard

__all__ = ["typechecked", "check_type"]


def _disabled() -> bool:
    return os.getenv("HOTCOLD_NO_TYPE_CHECK", "False").lower() in ("true", "1")


def typechecked(func=None, *args, **kwargs):
    if _disabled():
        if func is None:
            return partial(typechecked, *args, **kwargs)
        return func
    return typeguard.typechecked(func, *args, **kwargs)


def check_type(*args, **kwargs):
    if _disabled():
        return None
    return typeguard.check_type(*args, **kwargs)
