import threading
from domutils.config import DEFAULT_CHARSET

_lock = threading.Lock()
_default_charset = DEFAULT_CHARSET


def default_charset(charset: str = "") -> str:
    """
    Get and optionally replace the default charset used by the loaders.

    Args:
        charset: New default; an empty string leaves the current value in place

    Returns:
        The default in effect before the call
    """
    global _default_charset

    with _lock:
        previous = _default_charset
        if charset != "":
            _default_charset = charset
        return previous
