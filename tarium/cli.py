"""
CLI 模块

命令行接口实现。
"""

import asyncio
import functools
import sys
from pathlib import Path
from typing import List, Optional

import click
from loguru import logger

from tarium import __version__
from tarium.models import Profile, TariumConfig
from tarium.orchestrator import DEFAULT_PARALLEL_TASKS, ResolutionContext, TariumOrchestrator
from tarium.services import GitHubClient, ModManager, ModResolver, ModStateManager, parse_identifier
from tarium.services.profile_manager import (
    configure_profile,
    create_profile,
    delete_profile,
    get_active_profile,
    switch_profile,
)
from tarium.exceptions import TariumError
from tarium.logger import setup_logger, verbosity_to_level
from tarium.utils import default_config_path, read_config, write_config


class CliState:
    """命令之间共享的全局选项"""

    def __init__(self, config_path: Path, parallel_tasks: int, github_token: Optional[str]):
        self.config_path = config_path
        self.parallel_tasks = parallel_tasks
        self.github_token = github_token

    def load(self) -> TariumConfig:
        return read_config(self.config_path)

    def save(self, config: TariumConfig):
        write_config(self.config_path, config)

    def make_client(self) -> GitHubClient:
        return GitHubClient(token=self.github_token)

    def make_orchestrator(self, client: GitHubClient) -> TariumOrchestrator:
        return TariumOrchestrator(client, ResolutionContext(self.parallel_tasks))


def handle_errors(func):
    """把 TariumError 转换为 click 错误"""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except TariumError as e:
            logger.debug(f"命令失败: {e.to_dict()}")
            raise click.ClickException(str(e))

    return wrapper


def _print_profile(profile: Profile, active: bool = False):
    marker = "*" if active else " "
    click.echo(f"{marker} {profile.name}")
    click.echo(f"    输出目录: {profile.output_dir}")
    for f in profile.filters:
        click.echo(f"    过滤器:   {f}")
    enabled = sum(1 for m in profile.mods if m.enabled)
    click.echo(f"    模组:     {len(profile.mods)} 个 ({enabled} 个已启用)")


@click.group()
@click.option(
    "-p",
    "--parallel-tasks",
    type=click.IntRange(min=1),
    default=DEFAULT_PARALLEL_TASKS,
    show_default=True,
    help="同时进行的解析任务数",
)
@click.option("-v", "--verbose", count=True, help="输出更多日志（可多次使用）")
@click.option("--github-token", envvar="GITHUB_TOKEN", help="GitHub 访问令牌")
@click.option(
    "-c",
    "--config-file",
    envvar="TARIUM_CONFIG_FILE",
    type=click.Path(dir_okay=False, path_type=Path),
    help="配置文件路径",
)
@click.option(
    "--log-file",
    envvar="TARIUM_LOG_FILE",
    type=click.Path(dir_okay=False, path_type=Path),
    help="同时写入的日志文件（按大小轮转）",
)
@click.version_option(version=__version__)
@click.pass_context
def main(
    ctx: click.Context,
    parallel_tasks: int,
    verbose: int,
    github_token: Optional[str],
    config_file: Optional[Path],
    log_file: Optional[Path],
):
    """Tarium - SPT 模组管理工具"""
    setup_logger(
        level=verbosity_to_level(verbose) if verbose else None,
        sink=sys.stderr,
        enqueue=False,
        log_file=log_file,
    )
    ctx.obj = CliState(config_file or default_config_path(), parallel_tasks, github_token)


async def _add(state: CliState, profile: Profile, identifiers, checks: bool, override: bool):
    async with state.make_client() as client:
        manager = ModManager(ModResolver(client))
        return await manager.add(
            profile, identifiers, perform_checks=checks, override_filters=override
        )


def _add_and_save(ctx: click.Context, identifiers, force: bool, override: bool):
    state: CliState = ctx.obj
    config = state.load()
    profile = get_active_profile(config)
    successes, failures = asyncio.run(_add(state, profile, identifiers, not force, override))
    state.save(config)
    if failures:
        logger.error(f"{len(failures)} 个模组添加失败")
        ctx.exit(1)


@main.command()
@click.argument("identifiers", nargs=-1, required=True)
@click.option("-f", "--force", is_flag=True, help="跳过兼容性检查")
@click.option("--pin", type=int, help="锁定到指定的发布资源 ID")
@click.option("--override-filters", is_flag=True, help="忽略配置档案的过滤器")
@click.pass_context
@handle_errors
def add(ctx: click.Context, identifiers, force: bool, pin: Optional[int], override_filters: bool):
    """添加 GitHub 仓库模组（owner/repo）"""
    if pin is not None and len(identifiers) != 1:
        raise click.UsageError("--pin 只能用于单个模组")
    parsed = [parse_identifier(i, pin) for i in identifiers]
    _add_and_save(ctx, parsed, force, override_filters)


@main.command("add-from")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("-f", "--force", is_flag=True, help="跳过兼容性检查")
@click.pass_context
@handle_errors
def add_from(ctx: click.Context, file: Path, force: bool):
    """从文件添加模组，每行一个 owner/repo，# 开头的行会被忽略"""
    identifiers = []
    for line in file.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        identifiers.append(parse_identifier(line))
    if not identifiers:
        logger.warning(f"{file} 中没有模组")
        return
    _add_and_save(ctx, identifiers, force, False)


@main.command("list")
@click.option("--verbose", "-v", "detailed", is_flag=True, help="显示文件和过滤器")
@click.pass_obj
@handle_errors
def list_mods(state: CliState, detailed: bool):
    """列出当前配置档案的模组"""
    config = state.load()
    profile = get_active_profile(config)
    if not profile.mods:
        click.echo("配置档案中还没有模组")
        return
    for mod in profile.mods:
        status = "" if mod.enabled else " [已禁用]"
        click.echo(f"{mod.name}  {mod.identifier}{status}")
        if detailed:
            for f in mod.filters:
                click.echo(f"    过滤器: {f}")
            if mod.override_filters:
                click.echo("    覆盖配置档案过滤器")
            for file in mod.files:
                click.echo(f"    {file}")
    disabled_dirs = ModStateManager(profile.output_dir).list_disabled()
    if detailed and disabled_dirs:
        click.echo(f"禁用目录: {', '.join(disabled_dirs)}")


@main.command()
@click.argument("names", nargs=-1, required=True)
@click.pass_obj
@handle_errors
def remove(state: CliState, names: List[str]):
    """删除模组"""
    config = state.load()
    profile = get_active_profile(config)
    removed = ModManager().remove(profile, names)
    state.save(config)
    click.echo(f"已删除 {', '.join(m.name for m in removed)}")


@main.command()
@click.argument("names", nargs=-1, required=True)
@click.pass_obj
@handle_errors
def enable(state: CliState, names: List[str]):
    """启用模组"""
    config = state.load()
    profile = get_active_profile(config)
    ModManager().enable(profile, names)
    state.save(config)


@main.command()
@click.argument("names", nargs=-1, required=True)
@click.pass_obj
@handle_errors
def disable(state: CliState, names: List[str]):
    """禁用模组"""
    config = state.load()
    profile = get_active_profile(config)
    ModManager().disable(profile, names)
    state.save(config)


async def _upgrade(state: CliState, profile: Profile, local_only: bool):
    async with state.make_orchestrator(state.make_client()) as orchestrator:
        return await orchestrator.upgrade(profile, local_only)


@main.command()
@click.option("--local-only", is_flag=True, help="只从 MODS 目录重新安装，不访问网络")
@click.pass_context
@handle_errors
def upgrade(ctx: click.Context, local_only: bool):
    """下载并安装当前配置档案的模组"""
    state: CliState = ctx.obj
    config = state.load()
    profile = get_active_profile(config)
    report = asyncio.run(_upgrade(state, profile, local_only))
    state.save(config)
    if report.failed:
        ctx.exit(1)


@main.group()
def profile():
    """管理配置档案"""


@profile.command("create")
@click.option("--name", required=True, help="配置档案名称")
@click.option(
    "--output-dir",
    required=True,
    type=click.Path(file_okay=False, path_type=Path),
    help="SPT 安装目录",
)
@click.option("--game-version", "versions", multiple=True, required=True, help="SPT 版本")
@click.option("--minor", is_flag=True, help="匹配同一次要版本族的全部版本")
@click.pass_obj
@handle_errors
def profile_create(state: CliState, name: str, output_dir: Path, versions, minor: bool):
    """创建配置档案"""
    config = state.load()
    create_profile(config, name, output_dir.absolute(), list(versions), strict=not minor)
    state.save(config)


@profile.command("configure")
@click.option("--name", help="新名称")
@click.option("--output-dir", type=click.Path(file_okay=False, path_type=Path), help="新的输出目录")
@click.option("--game-version", "versions", multiple=True, help="新的 SPT 版本")
@click.option("--strict/--minor", default=None, help="版本匹配方式")
@click.pass_obj
@handle_errors
def profile_configure(
    state: CliState, name: Optional[str], output_dir: Optional[Path], versions, strict: Optional[bool]
):
    """修改当前配置档案"""
    config = state.load()
    configure_profile(
        get_active_profile(config),
        name=name,
        output_dir=output_dir.absolute() if output_dir else None,
        versions=list(versions) or None,
        strict=strict,
    )
    state.save(config)


@profile.command("delete")
@click.argument("name")
@click.pass_obj
@handle_errors
def profile_delete(state: CliState, name: str):
    """删除配置档案（不会删除输出目录中的文件）"""
    config = state.load()
    delete_profile(config, name)
    state.save(config)


@profile.command("switch")
@click.argument("name")
@click.pass_obj
@handle_errors
def profile_switch(state: CliState, name: str):
    """切换当前配置档案"""
    config = state.load()
    switch_profile(config, name)
    state.save(config)


@profile.command("info")
@click.pass_obj
@handle_errors
def profile_info(state: CliState):
    """显示当前配置档案"""
    config = state.load()
    _print_profile(get_active_profile(config), active=True)


def _list_profiles(state: CliState):
    config = state.load()
    if not config.profiles:
        click.echo("还没有任何配置档案")
        return
    for index, p in enumerate(config.profiles):
        _print_profile(p, active=index == config.active_profile)


@profile.command("list")
@click.pass_obj
@handle_errors
def profile_list(state: CliState):
    """列出全部配置档案"""
    _list_profiles(state)


@main.command("profiles")
@click.pass_obj
@handle_errors
def profiles(state: CliState):
    """列出全部配置档案"""
    _list_profiles(state)


if __name__ == "__main__":
    main()
