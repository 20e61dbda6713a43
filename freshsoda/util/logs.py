import logging

FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

def configure_logging(level: str = "INFO"):
    root = logging.getLogger("freshsoda")
    if not root.handlers:
        ch = logging.StreamHandler()
        ch.setFormatter(logging.Formatter(FORMAT))
        root.addHandler(ch)
    root.setLevel(level.upper())
    return root
