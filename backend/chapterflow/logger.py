"""日志配置 - 控制台输出 + 可选的滚动文件"""
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Union

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# 所有应用日志都挂在这个命名空间下
ROOT_LOGGER_NAME = "chapterflow"


def setup_logging(
    level: Union[str, int] = logging.INFO,
    log_to_file: bool = False,
    log_file_path: str = "data/logs/chapterflow.log",
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """
    初始化应用日志

    Args:
        level: 日志级别（"INFO" 或 logging.INFO）
        log_to_file: 是否同时写入文件
        log_file_path: 日志文件路径
        max_bytes: 单个日志文件最大字节数
        backup_count: 保留的历史日志文件数量
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    app_logger = logging.getLogger(ROOT_LOGGER_NAME)
    app_logger.setLevel(level)
    app_logger.propagate = False

    # 重复初始化时移除旧的处理器，避免日志重复输出
    for handler in list(app_logger.handlers):
        app_logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    app_logger.addHandler(console_handler)

    if log_to_file:
        log_path = Path(log_file_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            str(log_path),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        app_logger.addHandler(file_handler)

    app_logger.debug(f"日志初始化完成: level={logging.getLevelName(level)}, file={log_to_file}")


def get_logger(name: str) -> logging.Logger:
    """获取模块日志器，统一归入 chapterflow 命名空间"""
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
