import asyncio
import secrets

import click

from . import __version__
from .config import AppConfig, ConfigManager, StoreType

CONFIG_DIR_OPTION = click.option(
    "--config-dir",
    type=click.Path(),
    default=None,
    help="配置文件目录"
)


def _load_or_exit(config_manager: ConfigManager) -> AppConfig:
    if not config_manager.exists():
        raise click.ClickException("配置文件不存在，请先运行 'acgn-relay init' 或设置 ENV_BOT_TOKEN / ENV_BOT_SECRET")
    return config_manager.load()


def _build_app(config_manager: ConfigManager):
    from .app import RelayApp

    cfg = _load_or_exit(config_manager)
    db_path = config_manager.get_db_path() if cfg.store_type == StoreType.SQLITE else None
    return RelayApp.from_config(cfg, db_path)


@click.group(name="acgn-relay", help="acgn.es 新资源 Telegram 提醒")
def cli():
    pass


@cli.command(help="显示版本信息")
def version():
    click.echo(f"acgn-relay {__version__}")


@cli.command(help="交互式初始化配置")
@CONFIG_DIR_OPTION
def init(config_dir):
    config_manager = ConfigManager(config_dir)

    click.echo("🚀 acgn-relay - 初始化配置\n")

    if config_manager.config_path.exists():
        if not click.confirm("检测到已有配置，是否覆盖？", default=False):
            click.echo("已取消")
            return

    click.echo("1. Telegram Bot Token")
    click.echo("   从 @BotFather 获取你的 Bot Token")
    bot_token = click.prompt("   请输入 Bot Token", type=str)

    click.echo("\n2. Webhook Secret")
    bot_secret = click.prompt("   请输入 Secret", type=str, default=secrets.token_urlsafe(24))

    click.echo("\n3. 公网地址 (用于注册 webhook，留空则使用请求的域名)")
    public_url = click.prompt("   请输入 URL", type=str, default="")

    click.echo("\n4. 分发间隔")
    dispatch_interval = click.prompt("   请输入间隔（秒，0 表示禁用定时任务）", type=int, default=600)

    click.echo("\n5. 管理员 Chat ID (可选，用于接收系统告警)")
    admin_chat_id_str = click.prompt("   请输入管理员 Chat ID (留空跳过)", type=str, default="")
    admin_chat_id = int(admin_chat_id_str) if admin_chat_id_str else None

    config = AppConfig(
        bot_token=bot_token,
        bot_secret=bot_secret,
        public_url=public_url or None,
        dispatch_interval=dispatch_interval,
        admin_chat_id=admin_chat_id,
    )
    config_manager.save(config)

    click.echo(f"\n✅ 配置已保存到: {config_manager.config_path}")
    click.echo("\n使用 'acgn-relay run' 启动服务")


@cli.command(help="显示当前配置")
@CONFIG_DIR_OPTION
def config(config_dir):
    config_manager = ConfigManager(config_dir)
    cfg = _load_or_exit(config_manager)

    click.echo("📋 当前配置：\n")
    click.echo(f"  Bot Token: {cfg.bot_token[:10]}...{cfg.bot_token[-5:]}")
    click.echo(f"  公网地址: {cfg.public_url or '(按请求域名)'}")
    if cfg.admin_chat_id:
        click.echo(f"  管理员 Chat ID: {cfg.admin_chat_id}")
    click.echo(f"  数据源: {cfg.feed.base_url} (cid={cfg.feed.channel_id}, limit={cfg.feed.page_size})")
    click.echo(f"  存储: {cfg.store_type.value}")
    click.echo(f"  分发间隔: {cfg.dispatch_interval}秒")
    click.echo(f"  监听: {cfg.web_host}:{cfg.web_port}")
    click.echo(f"\n  配置文件: {config_manager.config_path}")
    click.echo(f"  数据库: {config_manager.db_path}")


@cli.command(help="启动 webhook 服务和定时任务")
@CONFIG_DIR_OPTION
def run(config_dir):
    from .app import setup_logging

    config_manager = ConfigManager(config_dir)
    log_dir = config_manager.config_dir / "logs"
    setup_logging(log_dir)

    app = _build_app(config_manager)
    click.echo("🚀 启动 acgn-relay...")
    click.echo(f"   监听: {app.config.web_host}:{app.config.web_port}")
    click.echo(f"   日志目录: {log_dir}\n")
    app.run()


@cli.command(help="立即执行一次分发任务")
@CONFIG_DIR_OPTION
def dispatch(config_dir):
    from .app import setup_logging

    setup_logging()
    app = _build_app(ConfigManager(config_dir))
    result = asyncio.run(app.run_dispatch())
    click.echo(f"status={result.status} posts={result.posts} sent={result.sent} failed={result.failed}")


@cli.command(name="set-webhook", help="注册 Telegram webhook")
@CONFIG_DIR_OPTION
@click.option("--url", type=str, default=None, help="Webhook 完整地址 (默认 <public_url>/webhook)")
def set_webhook(config_dir, url):
    app = _build_app(ConfigManager(config_dir))
    if not url:
        if not app.config.public_url:
            raise click.ClickException("请通过 --url 指定地址，或在配置中设置 public_url")
        url = f"{app.config.public_url.rstrip('/')}/webhook"
    if asyncio.run(app.set_webhook(url)):
        click.echo(f"✅ Webhook 已设置: {url}")
    else:
        raise click.ClickException("Webhook 设置失败")


@cli.command(name="unset-webhook", help="清除 Telegram webhook")
@CONFIG_DIR_OPTION
def unset_webhook(config_dir):
    app = _build_app(ConfigManager(config_dir))
    if asyncio.run(app.set_webhook("")):
        click.echo("✅ Webhook 已清除")
    else:
        raise click.ClickException("Webhook 清除失败")
