from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ValidationError

from src.agent.events import SessionFinished, TextDelta, ToolCallInfo, ToolResultInfo
from src.agent.instructions import load_custom_instructions
from src.agent.model_client import OpenAICompatModelClient
from src.agent.orchestrator import StreamOrchestrator
from src.agent.provider_registry import ModelRegistry
from src.authz.resolver import ToolAuthorizationResolver
from src.authz.store import PolicyStore
from src.bus.bus import PushUpdate, StateDistributionBus
from src.bus.topics import parse_topic
from src.config.settings import Settings, get_settings
from src.gateway.dispatch import ChatService
from src.gateway.protocol import (
    ChatDeleteParams,
    ChatHistoryParams,
    ChatSendParams,
    RPCError,
    RPCErrorData,
    RPCResponse,
    RPCStreamChunk,
    RPCToolCall,
    RPCToolResult,
    SetAuthorizationParams,
    SetProviderEnabledParams,
    StreamChunkData,
    SubscribeParams,
    ToolCallData,
    ToolResultData,
    parse_rpc_request,
)
from src.infra.errors import GatewayError, SessionCancelledError, SwitchboardError
from src.infra.logging import setup_logging
from src.session.store import ChatHistoryStore
from src.tools.builtins import register_builtins
from src.tools.registry import ToolRegistry

logger = structlog.get_logger()


def build_model_registry(settings: Settings) -> ModelRegistry:
    """One client per configured provider; fails fast if the active one is missing."""
    registry = ModelRegistry(default_provider=settings.provider.active)

    if settings.openai.api_key:
        openai_client = OpenAICompatModelClient(
            api_key=settings.openai.api_key,
            base_url=settings.openai.base_url,
        )
        registry.register("openai", openai_client, settings.openai.model)

    if settings.gemini.api_key:
        gemini_client = OpenAICompatModelClient(
            api_key=settings.gemini.api_key,
            base_url=settings.gemini.base_url,
        )
        registry.register("gemini", gemini_client, settings.gemini.model)
        logger.info("gemini_provider_registered", model=settings.gemini.model)

    try:
        registry.resolve()
    except KeyError as e:
        raise RuntimeError(
            f"Active provider '{settings.provider.active}' is not configured. "
            "Check API key settings."
        ) from e
    return registry


def build_chat_service(settings: Settings) -> ChatService:
    tool_registry = ToolRegistry()
    register_builtins(
        tool_registry,
        settings.tools.workspace_dir,
        max_read_bytes=settings.tools.max_read_bytes,
    )
    policy_store = PolicyStore(settings.tools.policy_path)
    service = ChatService(
        orchestrator=StreamOrchestrator(
            max_steps=settings.stream.max_steps,
            repair_enabled=settings.stream.repair_enabled,
            repair_temperature=settings.stream.repair_temperature,
        ),
        models=build_model_registry(settings),
        resolver=ToolAuthorizationResolver(tool_registry, policy_store.load),
        policy_store=policy_store,
        history=ChatHistoryStore(),
        bus=StateDistributionBus(),
        instructions=lambda: load_custom_instructions(
            settings.instructions.global_text,
            settings.tools.workspace_dir,
            settings.instructions.project_file,
        ),
    )
    tool_registry.add_listener(service.on_catalogue_changed)
    return service


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize shared state on startup."""
    settings = get_settings()
    setup_logging(json_output=settings.gateway.json_logs, log_level=settings.gateway.log_level)

    service = build_chat_service(settings)
    app.state.chat_service = service
    app.state.bus = service.bus
    logger.info(
        "gateway_started",
        host=settings.gateway.host,
        port=settings.gateway.port,
        default_provider=settings.provider.active,
        policy_path=str(settings.tools.policy_path),
    )

    yield

    service.stop()
    await service.aclose()
    logger.info("gateway_stopped")


app = FastAPI(title="Switchboard Gateway", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    await websocket.accept()
    logger.info("ws_connected")
    bus: StateDistributionBus = websocket.app.state.bus

    async def push(update: PushUpdate) -> None:
        await websocket.send_text(update.model_dump_json())

    bus.set_transport(push)
    pending: set[asyncio.Task[None]] = set()
    try:
        while True:
            raw = await websocket.receive_text()
            # Each request runs on its own task so chat.stop can arrive mid-stream.
            task = asyncio.create_task(_handle_rpc_message(websocket, raw))
            pending.add(task)
            task.add_done_callback(pending.discard)
    except WebSocketDisconnect:
        logger.info("ws_disconnected")
    finally:
        for task in list(pending):
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        # A newer connection may have taken over the transport; leave its state alone.
        if bus.transport is push:
            bus.set_transport(None)
            bus.clear()


async def _send(websocket: WebSocket, frame: BaseModel) -> None:
    await websocket.send_text(frame.model_dump_json())


def _parse_params(model: type[BaseModel], params: dict) -> Any:
    try:
        return model.model_validate(params)
    except ValidationError as e:
        raise GatewayError(str(e), code="INVALID_PARAMS") from e


async def _handle_rpc_message(websocket: WebSocket, raw: str) -> None:
    """Parse RPC request, route it, and write the response frames."""
    request_id = "unknown"
    service: ChatService = websocket.app.state.chat_service
    try:
        request = parse_rpc_request(raw)
        request_id = request.id

        if request.method == "chat.send":
            await _handle_chat_send(websocket, request_id, request.params)
        elif request.method == "chat.stop":
            data: Any = {"aborted": service.stop()}
            await _send(websocket, RPCResponse(id=request_id, data=data))
        elif request.method == "chat.history":
            parsed = _parse_params(ChatHistoryParams, request.params)
            data = {"messages": service.history.get_history_for_display(parsed.session_id)}
            await _send(websocket, RPCResponse(id=request_id, data=data))
        elif request.method == "chat.delete":
            parsed = _parse_params(ChatDeleteParams, request.params)
            data = {"deleted": await service.delete_session(parsed.session_id)}
            await _send(websocket, RPCResponse(id=request_id, data=data))
        elif request.method in ("subscribe", "unsubscribe"):
            await _handle_subscription(websocket, request_id, request.method, request.params)
        elif request.method == "tools.status":
            await _send(websocket, RPCResponse(id=request_id, data=service.tool_status()))
        elif request.method == "tools.set_authorization":
            parsed = _parse_params(SetAuthorizationParams, request.params)
            report = await service.set_authorization(parsed.config)
            await _send(websocket, RPCResponse(id=request_id, data=report))
        elif request.method == "providers.set_enabled":
            parsed = _parse_params(SetProviderEnabledParams, request.params)
            status = await service.set_provider_enabled(parsed.provider, parsed.enabled)
            await _send(websocket, RPCResponse(id=request_id, data=status))
        else:
            error = RPCError(
                id=request_id,
                error=RPCErrorData(
                    code="METHOD_NOT_FOUND",
                    message=f"Unknown method: {request.method}",
                ),
            )
            await _send(websocket, error)

    except SwitchboardError as e:
        logger.warning("request_error", code=e.code, error=str(e), request_id=request_id)
        error = RPCError(
            id=request_id,
            error=RPCErrorData(code=e.code, message=str(e)),
        )
        await _send(websocket, error)
    except Exception:
        logger.exception("unhandled_error", request_id=request_id)
        error = RPCError(
            id=request_id,
            error=RPCErrorData(code="INTERNAL_ERROR", message="An internal error occurred"),
        )
        await _send(websocket, error)


async def _handle_subscription(
    websocket: WebSocket, request_id: str, method: str, params: dict
) -> None:
    parsed = _parse_params(SubscribeParams, params)
    topic = parse_topic(parsed.topic)
    service: ChatService = websocket.app.state.chat_service
    bus: StateDistributionBus = websocket.app.state.bus

    if method == "subscribe":
        bus.subscribe(topic)
        # The subscriber has no prior state, so it gets the full current value.
        bus.drop_snapshot(topic)
        await _send(websocket, RPCResponse(id=request_id, data={"topic": topic.key}))
        await service.publish(topic)
    else:
        bus.unsubscribe(topic)
        await _send(websocket, RPCResponse(id=request_id, data={"topic": topic.key}))


async def _handle_chat_send(
    websocket: WebSocket, request_id: str, params: dict
) -> None:
    """Handle chat.send: run one turn and stream its events over the WebSocket."""
    parsed = _parse_params(ChatSendParams, params)
    service: ChatService = websocket.app.state.chat_service

    finish_reason: str | None = None
    try:
        async for event in service.send(
            session_id=parsed.session_id,
            content=parsed.content,
            provider=parsed.provider,
            model=parsed.model,
        ):
            if isinstance(event, TextDelta):
                chunk = RPCStreamChunk(
                    id=request_id,
                    data=StreamChunkData(content=event.content, done=False),
                )
                await _send(websocket, chunk)
            elif isinstance(event, ToolCallInfo):
                tool_msg = RPCToolCall(
                    id=request_id,
                    data=ToolCallData(
                        tool_name=event.tool_name,
                        arguments=event.arguments,
                        call_id=event.call_id,
                    ),
                )
                await _send(websocket, tool_msg)
            elif isinstance(event, ToolResultInfo):
                result_msg = RPCToolResult(
                    id=request_id,
                    data=ToolResultData(
                        tool_name=event.tool_name,
                        call_id=event.call_id,
                        success=event.success,
                        repaired=event.repaired,
                        result=event.result,
                    ),
                )
                await _send(websocket, result_msg)
            elif isinstance(event, SessionFinished):
                finish_reason = event.finish_reason
    except SessionCancelledError as e:
        # Cancellation is a normal terminal state, reported without an error frame.
        logger.info("chat_send_cancelled", session_id=e.session_id, reason=e.reason)
        done_chunk = RPCStreamChunk(
            id=request_id,
            data=StreamChunkData(content="", done=True, cancelled=True, finish_reason=e.reason),
        )
        await _send(websocket, done_chunk)
        return

    done_chunk = RPCStreamChunk(
        id=request_id,
        data=StreamChunkData(content="", done=True, finish_reason=finish_reason),
    )
    await _send(websocket, done_chunk)
