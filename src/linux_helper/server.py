"""WebSocket chat server.

Clients connect to ``/agent/<agent-name>/<conversation>``; every text frame
is a client event and every reply is an agent event. ``GET /api/agent``
answers with the default conversation id.
"""

from __future__ import annotations

import json
from http import HTTPStatus
from urllib.parse import unquote, urlsplit

from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.exceptions import ConnectionClosed
from websockets.http11 import Request, Response

from linux_helper.agent.session import ChatSession
from linux_helper.config.models import AppSettings
from linux_helper.llm.client import CompletionClient
from linux_helper.persistence.messages import MessageStore
from linux_helper.protocol.events import ServerEvent, encode_event
from linux_helper.runtime_logging import get_runtime_logger


def conversation_for_path(path: str, agent_name: str) -> str | None:
    """Return the conversation id addressed by a WebSocket path, if any."""
    parts = [unquote(part) for part in urlsplit(path).path.split("/") if part]
    if len(parts) != 3 or parts[0] != "agent" or parts[1] != agent_name:
        return None
    return parts[2]


class LinuxHelperServer:
    def __init__(
        self,
        *,
        settings: AppSettings,
        store: MessageStore,
        completion: CompletionClient,
    ) -> None:
        self.settings = settings
        self.store = store
        self.completion = completion
        self.logger = get_runtime_logger()

    def process_request(self, connection: ServerConnection, request: Request) -> Response | None:
        path = urlsplit(request.path).path
        server = self.settings.server
        if path == "/api/agent":
            body = json.dumps({"id": server.default_conversation})
            response = connection.respond(HTTPStatus.OK, body)
            del response.headers["Content-Type"]
            response.headers["Content-Type"] = "application/json"
            return response

        if conversation_for_path(request.path, server.agent_name) is None:
            self.logger.debug("server.http.not_found", path=request.path)
            return connection.respond(HTTPStatus.NOT_FOUND, "Not Found\n")
        return None

    async def handler(self, connection: ServerConnection) -> None:
        path = connection.request.path if connection.request else ""
        conversation_id = conversation_for_path(path, self.settings.server.agent_name)
        if conversation_id is None:
            conversation_id = self.settings.server.default_conversation

        async def send(event: ServerEvent) -> None:
            await connection.send(encode_event(event))

        session = ChatSession(
            log=self.store.conversation(conversation_id),
            completion=self.completion,
            send=send,
            max_steps=self.settings.model.max_steps,
        )
        logger = self.logger.bind(conversation_id=conversation_id, remote=str(connection.remote_address))
        logger.info("server.connect")
        try:
            async for frame in connection:
                await session.handle_raw(frame)
        except ConnectionClosed as exc:
            # Also raised from send when the peer leaves mid-reply.
            logger.info("server.connection.closed", code=exc.rcvd.code if exc.rcvd else None)
        finally:
            logger.info("server.disconnect")

    async def start(self, host: str | None = None, port: int | None = None) -> Server:
        server_settings = self.settings.server
        bind_host = host if host is not None else server_settings.host
        bind_port = port if port is not None else server_settings.port
        server = await serve(
            self.handler,
            bind_host,
            bind_port,
            process_request=self.process_request,
        )
        self.logger.info("server.started", host=bind_host, port=bind_port)
        return server

    async def serve_forever(self, host: str | None = None, port: int | None = None) -> None:
        server = await self.start(host, port)
        async with server:
            await server.serve_forever()
