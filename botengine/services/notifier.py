import logging

import httpx

from botengine.models.trade_models import Trade

logger = logging.getLogger("notifier")


class Notifier:
    def __init__(self, webhook_url: str = "", client: httpx.AsyncClient = None):
        self.webhook = webhook_url
        self.client = client or httpx.AsyncClient(timeout=5.0)

    async def close(self):
        await self.client.aclose()

    @staticmethod
    def _payload(event: str, trade: Trade) -> dict:
        return {
            "event": event,
            "trade_id": trade.id,
            "bot_id": trade.bot_id,
            "bot_name": trade.bot_name,
            "symbol": trade.symbol,
            "side": trade.side.value,
            "quantity": trade.quantity,
            "price": trade.price,
            "sl": trade.stop_loss,
            "tp": trade.take_profit,
            "exit_price": trade.exit_price,
            "pnl": trade.pnl,
            "pnl_percent": trade.pnl_percent,
            "notes": trade.notes,
        }

    async def _send(self, msg: dict):
        if not self.webhook:
            logger.info("Trade event: %s", msg)
            return
        try:
            await self.client.post(self.webhook, json=msg)
        except httpx.HTTPError:
            logger.exception("Notifier failed")

    async def notify_opened(self, trade: Trade):
        await self._send(self._payload("trade_opened", trade))

    async def notify_closed(self, trade: Trade):
        await self._send(self._payload("trade_closed", trade))
