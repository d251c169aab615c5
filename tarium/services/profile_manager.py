"""
配置档案管理
"""

from pathlib import Path
from typing import List, Optional, Tuple, Union

from loguru import logger

from tarium.models import FilterKind, Profile, TariumConfig
from tarium.models.config import VERSION_FILTER_KINDS
from tarium.exceptions import ConfigError, ConfigValidationError


def find_profile(config: TariumConfig, name: str) -> Tuple[int, Profile]:
    """按名称（不区分大小写）查找配置档案"""
    for index, profile in enumerate(config.profiles):
        if profile.name.lower() == name.lower():
            return index, profile
    raise ConfigError(f"找不到配置档案 '{name}'", context={"profile": name})


def get_active_profile(config: TariumConfig) -> Profile:
    """
    获取当前激活的配置档案

    Raises:
        ConfigError: 没有配置档案，或激活索引无效
    """
    if not config.profiles:
        raise ConfigError("还没有任何配置档案，请先运行 `tarium profile create`")
    if len(config.profiles) == 1:
        config.active_profile = 0
    elif config.active_profile >= len(config.profiles):
        raise ConfigError(
            f"激活的配置档案索引 {config.active_profile} 无效，请使用 `tarium profile switch` 选择",
            context={"active_profile": config.active_profile},
        )
    return config.profiles[config.active_profile]


def create_profile(
    config: TariumConfig,
    name: str,
    output_dir: Union[str, Path],
    versions: List[str],
    strict: bool = True,
) -> Profile:
    """创建配置档案并切换到新档案"""
    if any(p.name.lower() == name.lower() for p in config.profiles):
        raise ConfigValidationError(f"配置档案 '{name}' 已存在", context={"profile": name})
    if not versions:
        raise ConfigValidationError("至少需要一个游戏版本", context={"profile": name})

    profile = Profile.new(name, Path(output_dir), versions, strict)
    config.profiles.append(profile)
    config.active_profile = len(config.profiles) - 1
    logger.success(f"✓ 已创建配置档案 {name}")
    return profile


def configure_profile(
    profile: Profile,
    name: Optional[str] = None,
    output_dir: Optional[Union[str, Path]] = None,
    versions: Optional[List[str]] = None,
    strict: Optional[bool] = None,
) -> Profile:
    """修改配置档案；版本参数会替换已有的游戏版本过滤器"""
    if name:
        profile.name = name
    if output_dir is not None:
        output_dir = Path(output_dir)
        if not output_dir.is_absolute():
            raise ConfigValidationError(
                f"输出目录必须是绝对路径: {output_dir}", context={"profile": profile.name}
            )
        profile.output_dir = output_dir

    if versions is not None or strict is not None:
        current = profile.game_versions() or []
        if strict is None:
            strict = not any(
                f.kind is FilterKind.GAME_VERSION_MINOR for f in profile.filters
            )
        template = Profile.new(profile.name, profile.output_dir, versions or current, strict)
        others = [f for f in profile.filters if f.kind not in VERSION_FILTER_KINDS]
        profile.filters = template.filters + others

    logger.info(f"已更新配置档案 {profile.name}")
    return profile


def delete_profile(config: TariumConfig, name: str) -> Profile:
    """删除配置档案，并修正激活索引"""
    index, profile = find_profile(config, name)
    config.profiles.pop(index)
    if index < config.active_profile:
        config.active_profile -= 1
    if config.active_profile >= len(config.profiles):
        config.active_profile = max(len(config.profiles) - 1, 0)
    logger.info(f"已删除配置档案 {profile.name}")
    return profile


def switch_profile(config: TariumConfig, name: str) -> Profile:
    index, profile = find_profile(config, name)
    config.active_profile = index
    logger.info(f"已切换到配置档案 {profile.name}")
    return profile

