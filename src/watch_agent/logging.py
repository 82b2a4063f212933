import logging


def configure_logging(level: str = "INFO") -> None:
    """
    Configure logging for the watch agent.
    """

    # Convert "INFO" -> logging.INFO etc.
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    # httpx logs every request at INFO; only show it when debugging.
    logging.getLogger("httpx").setLevel(logging.DEBUG if numeric_level <= logging.DEBUG else logging.WARNING)
