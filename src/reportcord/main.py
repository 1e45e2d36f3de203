"""
Reportcord
==========

A Discord bot that lets members report abusive messages. Each report is
judged by an AI classifier and turned into mutes, warnings, kicks or bans,
while reporters who abuse the feature are temporarily barred from using it.
"""

import os
import sys
from pathlib import Path


def resolve_base_dir() -> Path:
    """Determine the base directory of the project.

    Resolution order:
    1. REPORTCORD_HOME environment variable, if set.
    2. If running in a frozen/compiled context, use the executable's directory.
    3. Otherwise, assume running from source and use the grandparent of this file's directory.
    """
    if env_home := os.getenv("REPORTCORD_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]


BASE_DIR = resolve_base_dir()

import asyncio
from dataclasses import dataclass

import discord
from dotenv import load_dotenv

from reportcord.util.logger import get_logger, handle_exception


logger = get_logger("main")


@dataclass
class Runtime:
    """Everything built at startup that has to be shut down again."""

    bot: discord.Bot
    store: "SQLiteKeyValueStore"
    settings_manager: "ReportSettingsManager"
    classifier: "OpenAIClassifier"
    scheduler: "CleanupScheduler"


def load_environment() -> str:
    """Load environment variables and return the Discord bot token.

    Raises
    ------
    SystemExit
        If the required ``DISCORD_BOT_TOKEN`` variable is missing.
    """
    load_dotenv(dotenv_path=BASE_DIR / ".env")
    token = os.getenv("DISCORD_BOT_TOKEN")
    if not token:
        logger.critical("'DISCORD_BOT_TOKEN' environment variable not set. Bot cannot start.")
        sys.exit(1)
    return token


def build_intents() -> discord.Intents:
    """Intents enabling guild, member and message content events."""
    intents = discord.Intents.default()
    intents.message_content = True
    intents.guilds = True
    intents.messages = True
    intents.members = True
    return intents


async def build_runtime() -> Runtime:
    """Open the store, load settings and wire the report pipeline into a new bot."""
    from reportcord.ai.classifier import OpenAIClassifier
    from reportcord.bot.cogs import message_listener, report_cmds, report_settings_cmds
    from reportcord.bot.discord_bridge import DiscordActionDispatcher, DiscordMessageSource, DiscordNotifier
    from reportcord.configuration.app_configuration import app_config
    from reportcord.report.audit_logger import AuditLogger
    from reportcord.report.enforcement_executor import EnforcementExecutor
    from reportcord.report.report_service import ReportService
    from reportcord.scheduler.cleanup_scheduler import CleanupScheduler
    from reportcord.settings.report_settings_manager import ReportSettingsManager
    from reportcord.storage.db_connection import db_connection
    from reportcord.storage.key_value_store import SQLiteKeyValueStore

    await db_connection.open(app_config.database_path)
    store = SQLiteKeyValueStore(db_connection)
    await store.load()

    settings_manager = ReportSettingsManager(store, app_config.report_defaults)
    await settings_manager.async_init()

    bot = discord.Bot(intents=build_intents())

    audit_logger = AuditLogger(store)
    channel_id = app_config.notification_channel_id
    if channel_id:
        audit_logger.subscribe(DiscordNotifier(bot, channel_id))

    classifier = OpenAIClassifier(app_config.ai_settings)
    service = ReportService(
        settings_manager=settings_manager,
        classifier=classifier,
        message_source=DiscordMessageSource(bot),
        executor=EnforcementExecutor(DiscordActionDispatcher(bot, store), audit_logger),
        audit_logger=audit_logger,
    )

    report_cmds.setup(bot, service)
    report_settings_cmds.setup(bot, settings_manager, audit_logger)
    message_listener.setup(bot, service)
    logger.info("All cogs loaded successfully.")

    scheduler = CleanupScheduler(
        sweep=service.sweep,
        get_interval=lambda: app_config.cleanup_interval,
        flush=store.flush,
    )
    return Runtime(bot, store, settings_manager, classifier, scheduler)


async def shutdown_runtime(runtime: Runtime) -> None:
    """Stop the scheduler and bot, then persist and close the store."""
    from reportcord.storage.db_connection import db_connection

    await runtime.scheduler.shutdown()

    if not runtime.bot.is_closed():
        await runtime.bot.close()

    try:
        await runtime.classifier.close()
    except Exception as exc:
        logger.exception("Error closing classifier client: %s", exc)

    try:
        await runtime.settings_manager.shutdown()
        written = await runtime.store.flush()
        logger.info("Flushed %d pending keys", written)
    except Exception as exc:
        logger.exception("Error persisting state during shutdown: %s", exc)
    finally:
        await db_connection.close()

    logger.info("Shutdown complete.")


async def async_main() -> int:
    """Bootstrap the bot and run it until it disconnects, returning an exit code."""
    token = load_environment()

    try:
        runtime = await build_runtime()
    except Exception as exc:
        logger.critical("Failed to initialize Reportcord: %s", exc)
        return 1

    exit_code = 0
    try:
        runtime.scheduler.start()
        logger.info("Attempting to connect to Discord…")
        await runtime.bot.start(token)
    except asyncio.CancelledError:
        logger.info("Bot start cancelled; proceeding to shutdown")
    except Exception as exc:
        logger.critical("Discord bot runtime error: %s", exc)
        exit_code = 1
    finally:
        await shutdown_runtime(runtime)

    return exit_code


def main() -> int:
    """Entrypoint that runs the async runtime and returns the process exit code."""
    os.chdir(BASE_DIR)
    logger.info("Starting Reportcord…")
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
        return 0
    except SystemExit as exit_exc:
        code = exit_exc.code
        if isinstance(code, int):
            return code
        return 1
    except Exception as exc:
        logger.critical("An unexpected error occurred while running the bot: %s", exc)
        return 1


if __name__ == "__main__":
    sys.excepthook = handle_exception
    print(f"Exited with code: {main()}")
