import json
import os
from pathlib import Path
from typing import Optional, Union

import click
import toml
import yaml
from loguru import logger

from tarium.models import TariumConfig
from tarium.exceptions import ConfigError, ConfigParseError

CONFIG_ENV = "TARIUM_CONFIG_FILE"
APP_NAME = "tarium"


def default_config_path() -> Path:
    env = os.environ.get(CONFIG_ENV)
    if env:
        return Path(env)
    return Path(click.get_app_dir(APP_NAME)) / "config.json"


def load_config_file(path: Path) -> Optional[dict]:
    """按扩展名解析配置文件"""
    suffix = path.suffix.lower()
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}

    try:
        if suffix == ".toml":
            return toml.loads(text)
        elif suffix in (".yaml", ".yml"):
            return yaml.safe_load(text)
        else:
            return json.loads(text)
    except (json.JSONDecodeError, toml.TomlDecodeError, yaml.YAMLError) as e:
        raise ConfigParseError(
            f"无法解析配置文件 {path}: {e}", context={"path": str(path)}
        )


def dump_config(path: Path, data: dict) -> str:
    suffix = path.suffix.lower()
    if suffix == ".toml":
        return toml.dumps(data)
    elif suffix in (".yaml", ".yml"):
        return yaml.safe_dump(data, allow_unicode=True, sort_keys=False)
    return json.dumps(data, indent=4, ensure_ascii=False) + "\n"


def write_config(path: Union[str, Path], config: TariumConfig):
    """写入配置文件，写入前按名称排序每个档案的模组"""
    path = Path(path)
    for profile in config.profiles:
        profile.sort_mods()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(dump_config(path, config.to_dict()), encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"无法写入配置文件 {path}: {e}", context={"path": str(path)})
    logger.debug(f"配置已保存到 {path}")


def read_config(path: Union[str, Path]) -> TariumConfig:
    """读取配置文件，不存在时创建一个空配置"""
    path = Path(path)
    if not path.exists():
        logger.debug(f"配置文件不存在，创建空配置: {path}")
        config = TariumConfig()
        write_config(path, config)
        return config

    try:
        data = load_config_file(path)
    except OSError as e:
        raise ConfigError(f"无法读取配置文件 {path}: {e}", context={"path": str(path)})
    return TariumConfig.from_dict(data)
