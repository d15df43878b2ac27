import logging
import sys

def configure_logging(level: int = logging.INFO):
    """Configure logging for the engine process."""
    root = logging.getLogger()
    if any(getattr(h, "_botengine", False) for h in root.handlers):
        return
    handler = logging.StreamHandler(sys.stdout)
    handler._botengine = True
    formatter = logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
    handler.setFormatter(formatter)
    root.addHandler(handler)
    root.setLevel(level)

__all__ = ['configure_logging']
