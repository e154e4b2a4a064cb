import logging

from pprintpp import pformat

__all__ = ["logger", "log_state"]

logger = logging.getLogger("HotCold")

_handler = logging.StreamHandler()
_handler.setFormatter(
    logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
)
logger.addHandler(_handler)


def log_state(func):
    """Log the state of the bound object once the wrapped method returns or fails."""

    def wrapper(obj, *args, **kwargs):
        try:
            output = func(obj, *args, **kwargs)
            logger.debug(
                f"Class: {obj.__class__.__name__}, method: {func.__name__}, "
                f"state:\n {pformat(vars(obj), indent=2)}"
            )
            return output
        except Exception:
            logger.warning(
                f"Class: {obj.__class__.__name__}, method: {func.__name__}, "
                f"state:\n {pformat(vars(obj), indent=2)}"
            )
            raise

    return wrapper
