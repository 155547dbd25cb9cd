"""Tick monitor - streams configured feeds over one live session and logs them."""

import asyncio
import functools
import logging
import os
import signal
import sys
from typing import Any, Dict, Optional

from .config.settings import load_settings
from .errors import LiveError
from .session import LiveApi, log_failed_call
from .utils.logging import setup_logging


logger = logging.getLogger(__name__)


class TickMonitorService:
    """Keeps a session subscribed to the configured feeds until shut down."""

    def __init__(self, config_file: Optional[str] = None):
        self.config = load_settings(config_file)
        self.api: Optional[LiveApi] = None
        self._shutdown_event = asyncio.Event()

        setup_logging(self.config.logging, self.config.service_name)
        logger.info("Tick monitor initialized")

    async def start(self):
        """Start streaming and block until a shutdown signal arrives."""
        logger.info("Starting tick monitor")

        self.api = LiveApi.from_settings(self.config)
        self._register_listeners()
        self._setup_signal_handlers()

        try:
            await self._subscribe()
            await self._shutdown_event.wait()
        finally:
            logger.info("Shutting down tick monitor")
            self.api.disconnect()
            logger.info("Tick monitor stopped")

    def stop(self):
        self._shutdown_event.set()

    async def _subscribe(self):
        monitor = self.config.monitor

        if monitor.token:
            try:
                response = await self.api.authorize(monitor.token)
                logger.info(f"Authorized as {response['authorize'].get('loginid')}")
            except LiveError as e:
                logger.error(f"Authorization failed: {e}")
                raise

            if monitor.balance:
                self._watch("balance subscription", self.api.subscribe_to_balance())
            if monitor.transactions:
                self._watch("transaction subscription", self.api.subscribe_to_transactions())
            if monitor.portfolio:
                self._watch("portfolio subscription", self.api.subscribe_to_all_open_contracts())

        for symbol in monitor.symbols:
            self._watch(f"{symbol} tick subscription", self.api.subscribe_to_tick(symbol))
        logger.info(f"Subscribed to ticks for {', '.join(monitor.symbols)}")

    @staticmethod
    def _watch(description: str, future):
        future.add_done_callback(functools.partial(log_failed_call, description))

    def _register_listeners(self):
        self.api.events.on('tick', self._on_tick)
        self.api.events.on('balance', self._on_balance)
        self.api.events.on('transaction', self._on_transaction)
        self.api.events.on('error', self._on_error)

    def _on_tick(self, message: Dict[str, Any]):
        tick = message.get('tick', {})
        logger.info(f"{tick.get('symbol')} {tick.get('quote')} @ {tick.get('epoch')}")

    def _on_balance(self, message: Dict[str, Any]):
        balance = message.get('balance', {})
        logger.info(f"Balance {balance.get('balance')} {balance.get('currency')}")

    def _on_transaction(self, message: Dict[str, Any]):
        transaction = message.get('transaction', {})
        logger.info(f"Transaction {transaction.get('action')} {transaction.get('amount')}")

    def _on_error(self, message: Dict[str, Any]):
        error = message.get('error', {})
        logger.warning(f"Server error {error.get('code')}: {error.get('message')}")

    def _setup_signal_handlers(self):
        """Setup signal handlers for graceful shutdown."""
        def signal_handler(signum, frame):
            logger.info(f"Received signal {signum}, initiating shutdown")
            self._shutdown_event.set()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)


async def main():
    """Main entry point."""
    config_file = os.getenv("CONFIG_FILE")
    service = TickMonitorService(config_file)

    try:
        await service.start()
    except Exception as e:
        logger.error(f"Service failed: {e}", exc_info=True)
        sys.exit(1)


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
