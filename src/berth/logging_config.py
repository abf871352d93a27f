"""ロギング設定。"""

import logging

from rich.console import Console
from rich.logging import RichHandler

# 旧来のレベル名も受け付ける
_LEVEL_ALIASES = {
    "TRACE": logging.DEBUG,
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


def parse_log_level(name: str) -> int:
    """レベル名をloggingのレベル値に変換する。

    Raises:
        ValueError: 未知のレベル名の場合。
    """
    try:
        return _LEVEL_ALIASES[name.strip().upper()]
    except KeyError:
        raise ValueError(f"Unknown log level: {name} (expected one of {', '.join(_LEVEL_ALIASES)})") from None


def setup_logging(level: str = "INFO") -> None:
    """ルートロガーにstderr向けのRichHandlerを設定する。既存のハンドラは外す。"""
    log_level = parse_log_level(level)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = RichHandler(
        console=Console(stderr=True),
        show_time=False,
        show_path=False,
        markup=False,
        rich_tracebacks=False,
    )
    handler.setLevel(log_level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)
