"""
Telegram Payment Bot - Entry Point

Runs, in one process:
- the Telegram bot in polling mode
- the /health endpoint (FastAPI on uvicorn)
- the idle-session sweeper
"""

import asyncio
import contextlib
import logging
import sys

import structlog
import uvicorn

from billing_api.src.client import BillingApiClient
from conversation_engine.src import Dispatcher as ConversationDispatcher
from conversation_engine.src import InMemorySessionStore, Orchestrator, SessionStore

from .bot import create_bot_and_dispatcher
from .config import Settings, settings
from .health import app as health_app


def configure_logging(config: Settings):
    """structlog for our events, stdlib logging for aiogram/uvicorn"""
    level = getattr(logging, config.log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer() if config.log_format == "json"
            else structlog.dev.ConsoleRenderer()
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


logger = structlog.get_logger(__name__)


def build_engine(config: Settings) -> tuple[ConversationDispatcher, BillingApiClient, InMemorySessionStore]:
    """Wires API client, session store, orchestrator and dispatcher"""
    api = BillingApiClient(
        host=config.billing_api_host,
        scheme=config.billing_api_scheme,
        timeout=config.billing_request_timeout,
        max_attempts=config.billing_max_attempts,
        base_delay=config.billing_retry_base_delay,
        user_agent=config.billing_user_agent,
    )
    store = InMemorySessionStore()
    engine = ConversationDispatcher(Orchestrator(api=api, store=store))
    return engine, api, store


async def sweep_sessions(store: SessionStore, ttl_seconds: int, interval_seconds: int):
    """Periodically drops idle sessions"""
    while True:
        await asyncio.sleep(interval_seconds)
        store.sweep_expired(ttl_seconds)


class HealthServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the polling loop"""

    @contextlib.contextmanager
    def capture_signals(self):
        # uvicorn >= 0.29
        yield

    def install_signal_handlers(self) -> None:
        # uvicorn < 0.29
        pass


def build_health_server(config: Settings) -> HealthServer:
    return HealthServer(uvicorn.Config(
        health_app,
        host=config.health_host,
        port=config.health_port,
        log_level=config.log_level.lower(),
    ))


async def run_health_server(config: Settings):
    await build_health_server(config).serve()


async def main():
    """Main entry point"""
    configure_logging(settings)

    logger.info(
        "payment_bot_starting",
        billing_api_host=settings.billing_api_host,
        health_port=settings.health_port,
        session_ttl_seconds=settings.session_ttl_seconds
    )

    engine, api, store = build_engine(settings)
    bot, dp = create_bot_and_dispatcher(engine)

    background = [asyncio.create_task(run_health_server(settings))]
    if settings.session_ttl_seconds > 0:
        background.append(asyncio.create_task(sweep_sessions(
            store,
            settings.session_ttl_seconds,
            settings.session_sweep_interval_seconds
        )))

    try:
        await dp.start_polling(bot, allowed_updates=dp.resolve_used_update_types())
    except Exception as e:
        logger.error("polling_failed", error=str(e), exc_info=True)
    finally:
        for task in background:
            task.cancel()
        await asyncio.gather(*background, return_exceptions=True)
        await api.close()
        await bot.session.close()
        logger.info("payment_bot_stopped")


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("payment_bot_interrupted")


if __name__ == "__main__":
    run()
