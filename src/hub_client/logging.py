import logging


def configure_logging(level: str = "INFO") -> None:
    """
    Configure logging for a camera or admin node.
    """

    # Convert "INFO" -> logging.INFO etc.
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    # Configure root logger.
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # engineio/socketio are chatty at INFO; keep them one notch quieter.
    for name in ("engineio", "socketio"):
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))
