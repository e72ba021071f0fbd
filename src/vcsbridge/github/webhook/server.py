"""aiohttp server receiving GitHub webhook deliveries.

Routes:
    POST /webhook/github?binding=<id>   delivery endpoint
    GET  /health                        liveness and queue depth

Request errors (missing headers, unreadable body) answer 500 with a
plain-text diagnostic, signature failures answer 401 and unknown bindings
404. An accepted delivery answers 200 with a JSON echo of the parsed URL
and the dispatch outcome.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from aiohttp import web

from vcsbridge.errors import BindingNotFoundError, DeliveryRequestError, SignatureError
from vcsbridge.github.webhook.delivery import DeliveryService
from vcsbridge.github.webhook.processes import DeliveryProcessor


logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Webhook Server
# ---------------------------------------------------------------------------


class WebhookServer:
    """Receives GitHub deliveries and hands them to :class:`DeliveryService`.

    Dispatch runs in a worker thread so provider calls made by handlers do
    not block the event loop. When the service queues deliveries, a
    background task drains the queue every ``process_interval`` seconds.

    Example:
        >>> server = WebhookServer(service, listen_port=8765)
        >>> await server.start()
    """

    def __init__(
        self,
        service: DeliveryService,
        *,
        listen_host: str = "127.0.0.1",
        listen_port: int = 8765,
        path: str = "/webhook/github",
        processor: Optional[DeliveryProcessor] = None,
        process_interval: float = 10.0,
    ) -> None:
        self.service = service
        self.listen_host = listen_host
        self.listen_port = listen_port
        self.path = path
        self.processor = processor
        self.process_interval = process_interval

        self.app = web.Application()
        self._setup_routes()
        self.runner: Optional[web.AppRunner] = None
        self.site: Optional[web.TCPSite] = None
        self._processor_task: Optional[asyncio.Task] = None

    def _setup_routes(self) -> None:
        self.app.router.add_post(self.path, self.handle_webhook)
        self.app.router.add_get("/health", self.health_check)

    async def handle_webhook(self, request: web.Request) -> web.Response:
        binding_id = request.query.get("binding")
        if not binding_id:
            return web.Response(status=500, text="Missing binding parameter")

        body = await request.read()
        try:
            receipt = await asyncio.to_thread(
                self.service.receive, binding_id, dict(request.headers), body, str(request.url)
            )
        except BindingNotFoundError as exc:
            return web.Response(status=404, text=exc.message)
        except SignatureError as exc:
            logger.warning(
                "Rejected webhook delivery",
                extra={"binding_id": binding_id, "error_code": exc.code},
            )
            return web.Response(status=401, text=exc.message)
        except DeliveryRequestError as exc:
            logger.warning(
                "Malformed webhook delivery",
                extra={"binding_id": binding_id, "error": exc.message},
            )
            return web.Response(status=500, text=exc.message)

        return web.json_response(receipt.to_dict())

    async def health_check(self, request: web.Request) -> web.Response:
        queue = self.service.queue
        return web.json_response(
            {
                "status": "healthy",
                "asynchronous": queue is not None,
                "queue_size": len(queue) if queue is not None else 0,
            }
        )

    async def start(self) -> None:
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        self.site = web.TCPSite(self.runner, self.listen_host, self.listen_port)
        await self.site.start()
        logger.info(
            f"Webhook server listening on {self.listen_host}:{self.listen_port}",
            extra={"host": self.listen_host, "port": self.listen_port},
        )

        if self.processor is not None:
            self._processor_task = asyncio.create_task(self._process_queue())
            logger.info("Delivery queue processor started")

    async def stop(self) -> None:
        if self.site:
            await self.site.stop()

        if self._processor_task:
            self._processor_task.cancel()
            try:
                await self._processor_task
            except asyncio.CancelledError:
                pass

        if self.runner:
            await self.runner.cleanup()
        logger.info("Webhook server stopped")

    async def _process_queue(self) -> None:
        while True:
            try:
                report = await asyncio.to_thread(self.processor.run, self.process_interval)
                if report.visited or report.failed:
                    logger.info("Processed queued deliveries", extra=report.to_dict())
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Delivery queue processing failed")
            await asyncio.sleep(self.process_interval)


__all__ = ["WebhookServer"]
