"""
Logging configuration for fieldnotes.

Suppress verbose library output by default.
"""

import logging
import os
import sys

NOISY_LOGGERS = ("sentence_transformers", "transformers", "httpx", "urllib3", "openai")


def configure_logging(level: str = "WARNING", quiet: bool = True):
    """
    Install a single stderr handler on the root logger.

    Args:
        level: Level name for fieldnotes' own loggers.
        quiet: If True, silence HuggingFace progress bars and chatty HTTP clients.
    """
    if quiet:
        os.environ.setdefault("HF_HUB_DISABLE_PROGRESS_BARS", "1")
        os.environ.setdefault("TOKENIZERS_PARALLELISM", "false")
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.ERROR)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.WARNING))

    if not any(isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stderr
               for h in root_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S"
        ))
        root_logger.addHandler(handler)
