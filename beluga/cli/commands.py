"""
CLI 命令模块 - beluga 的所有命令行命令定义。

本模块使用 Typer 框架定义 beluga 的 CLI 命令：
- onboard：生成默认配置文件
- run：启动机器人（Discord 渠道 + 调度循环 + 超时回收）
- chat：绕过 Discord，直接向当前回复后端发送一条消息（检查凭据和模型配置）
- status：查看配置状态

技术栈：
- Typer：CLI 框架（基于 Click，支持类型注解自动生成帮助文档）
- Rich：终端美化输出（Markdown 渲染、颜色）
- loguru：运行日志，--debug / DEBUG_LOG=true 时输出 DEBUG 级别
"""

import asyncio
import sys

import typer
from loguru import logger
from rich.console import Console
from rich.markdown import Markdown

from beluga import __version__, __logo__

app = typer.Typer(
    name="beluga",
    help=f"{__logo__} beluga - Discord thread chat bot",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    """版本号回调：当用户传入 --version/-v 参数时，打印版本号并退出。"""
    if value:
        console.print(f"{__logo__} beluga v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """beluga CLI 根命令回调。处理全局选项（如 --version）。"""
    pass


def _setup_logging(debug: bool) -> None:
    """重新配置 loguru 输出：调试模式下输出 DEBUG，否则 INFO。"""
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if debug else "INFO")


def _load_config_or_exit():
    """
    加载并校验配置。缺少必填项属于致命错误：打印原因并以退出码 1 结束进程。
    """
    from beluga.config.loader import ConfigError, load_config, validate_config

    try:
        return validate_config(load_config())
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        console.print("Set it in the environment or in ~/.beluga/config.json")
        raise typer.Exit(1)


def _make_provider(config):
    """根据配置创建回复提供者（启动时选定，之后不再切换）。"""
    from beluga.config.loader import ConfigError
    from beluga.providers.factory import create_provider

    try:
        return create_provider(config)
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)


def _generation_settings(config):
    from beluga.providers.base import GenerationSettings

    return GenerationSettings(
        model=config.get_model(),
        max_tokens=config.session.max_tokens,
        temperature=config.session.temperature,
    )


# ============================================================================
# Onboard / Setup
# ============================================================================


@app.command()
def onboard():
    """在 ~/.beluga/config.json 生成默认配置文件（已存在时询问是否覆盖）。"""
    from beluga.config.loader import get_config_path, save_config
    from beluga.config.schema import Config

    config_path = get_config_path()

    if config_path.exists():
        console.print(f"[yellow]Config already exists at {config_path}[/yellow]")
        if not typer.confirm("Overwrite?"):
            raise typer.Exit()

    save_config(Config())
    console.print(f"[green]✓[/green] Created config at {config_path}")

    console.print(f"\n{__logo__} beluga is almost ready!")
    console.print("\nNext steps:")
    console.print("  1. Add your Discord bot token under [cyan]discord.token[/cyan] (or set DISCORD_TOKEN)")
    console.print("  2. Pick [cyan]llmProvider[/cyan] and add its API key under [cyan]providers[/cyan]")
    console.print("  3. Start: [cyan]beluga run[/cyan]")


# ============================================================================
# Run
# ============================================================================


@app.command()
def run(
    debug: bool = typer.Option(False, "--debug", "-d", help="Verbose debug logging"),
):
    """
    启动机器人（核心启动命令）。

    1. 加载并校验配置（缺少必填项直接退出）
    2. 创建消息总线、Discord 渠道、回复提供者
    3. 创建会话控制器、调度循环和超时回收服务
    4. 运行直到被中断，然后按顺序收尾
    """
    from beluga.bot.loop import BotLoop
    from beluga.bus.queue import MessageBus
    from beluga.channels.discord import DiscordChannel
    from beluga.reaper.service import ReaperService
    from beluga.session.lifecycle import SessionController

    config = _load_config_or_exit()
    _setup_logging(debug or config.debug)

    bus = MessageBus()
    client = DiscordChannel(config.discord, bus)
    provider = _make_provider(config)
    controller = SessionController(
        client=client,
        provider=provider,
        config=config.session,
        generation=_generation_settings(config),
    )
    loop = BotLoop(bus, client, controller)
    reaper = ReaperService(
        controller,
        interval_s=config.session.reap_interval_s,
        ttl_s=config.session.ttl_s,
    )

    mode = " (mock)" if config.uses_mock else ""
    console.print(f"{__logo__} Starting beluga with {config.provider_name}{mode} / {config.get_model()}...")
    console.print(f"[green]✓[/green] Session timeout: {int(config.session.ttl_s // 60)}m, "
                  f"sweep every {int(config.session.reap_interval_s)}s")

    async def serve():
        await reaper.start()
        try:
            await asyncio.gather(loop.run(), client.start())
        finally:
            console.print("\nShutting down...")
            reaper.stop()
            loop.stop()
            await loop.drain()
            await controller.shutdown()
            await provider.aclose()
            await client.stop()

    try:
        asyncio.run(serve())
    except KeyboardInterrupt:
        pass


# ============================================================================
# Chat (provider smoke test)
# ============================================================================


@app.command()
def chat(
    message: str = typer.Argument(..., help="Message to send to the configured provider"),
    markdown: bool = typer.Option(True, "--markdown/--no-markdown", help="Render the reply as Markdown"),
):
    """绕过 Discord，直接把一条用户消息发给当前回复后端并打印回复。"""
    from beluga.config.loader import ConfigError, load_config

    try:
        config = load_config()
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    p = config.get_provider()
    if p is None:
        console.print(f"[red]Error: Unknown LLM provider: {config.llm_provider!r}[/red]")
        raise typer.Exit(1)
    if not p.api_key and not config.uses_mock:
        console.print(f"[red]Error: No API key configured for {config.provider_name}[/red]")
        raise typer.Exit(1)

    _setup_logging(config.debug)
    provider = _make_provider(config)

    async def run_once() -> str:
        try:
            with console.status("[dim]beluga is thinking...[/dim]", spinner="dots"):
                return await provider.generate_reply(
                    [{"role": "user", "content": message}],
                    config.session.system_prompt,
                    _generation_settings(config),
                )
        finally:
            await provider.aclose()

    reply = asyncio.run(run_once())

    console.print()
    console.print(f"[cyan]{__logo__} beluga[/cyan]")
    console.print(Markdown(reply) if markdown else reply)
    console.print()


# ============================================================================
# Status
# ============================================================================


@app.command()
def status():
    """
    显示 beluga 配置状态。

    展示内容：
    - 配置文件路径和状态
    - Discord token 是否已配置
    - 当前回复后端、模型、Mock 模式
    - 各后端 API Key 配置状态
    """
    from beluga.config.loader import ConfigError, get_config_path, load_config
    from beluga.providers.registry import PROVIDERS

    config_path = get_config_path()
    try:
        config = load_config()
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"{__logo__} beluga Status\n")
    console.print(f"Config: {config_path} {'[green]✓[/green]' if config_path.exists() else '[dim]not found[/dim]'}")
    console.print(f"Discord token: {'[green]✓[/green]' if config.discord.token else '[red]not set[/red]'}")
    console.print(f"Provider: {config.provider_name}{' (mock)' if config.uses_mock else ''}")
    console.print(f"Model: {config.get_model() or '[red]unknown provider[/red]'}")
    console.print(f"End action: {'delete' if config.session.delete_on_end else 'archive'}")

    for spec in PROVIDERS:
        p = getattr(config.providers, spec.name, None)
        if p is None:
            continue
        has_key = bool(p.api_key)
        console.print(f"{spec.label}: {'[green]✓[/green]' if has_key else '[dim]not set[/dim]'}")


if __name__ == "__main__":
    app()
