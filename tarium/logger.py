"""
日志模块

使用 loguru 提供统一的日志记录功能。
"""

import os
import sys
from pathlib import Path
from typing import Optional, Union

from loguru import logger

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}"


def verbosity_to_level(verbosity: int) -> str:
    """将 -v 的次数转换为日志级别"""
    if verbosity <= 0:
        return "INFO"
    if verbosity == 1:
        return "DEBUG"
    return "TRACE"


def setup_logger(
    level: Optional[str] = None,
    sink=sys.stdout,
    enqueue: bool = True,
    colorize: bool = True,
    log_file: Optional[Union[str, Path]] = None,
) -> None:
    """
    设置日志记录器

    Args:
        level: 日志级别 (TRACE, DEBUG, INFO, WARNING, ERROR)
        sink: 输出目标
        enqueue: 是否启用队列（线程安全）
        colorize: 是否启用颜色
        log_file: 额外写入的日志文件，按大小轮转
    """
    # 从环境变量获取日志级别
    if level is None:
        level = "DEBUG" if os.environ.get("TARIUM_DEBUG", "0") == "1" else "INFO"

    debug_mode = level in ("DEBUG", "TRACE")

    # 移除默认处理器
    logger.remove()

    # 添加控制台处理器
    logger.add(
        sink=sink,
        format=LOG_FORMAT,
        enqueue=enqueue,
        level=level,
        colorize=colorize,
        backtrace=debug_mode,
        diagnose=debug_mode,
    )

    if log_file is not None:
        logger.add(
            sink=str(log_file),
            format=LOG_FORMAT,
            enqueue=enqueue,
            level="DEBUG",
            rotation="5 MB",
            retention=5,
            encoding="utf-8",
        )

    if debug_mode:
        logger.debug("DEBUG 模式已启用")


def get_logger():
    """获取日志记录器实例"""
    return logger


# 导出 logger
__all__ = ["logger", "setup_logger", "get_logger", "verbosity_to_level"]
