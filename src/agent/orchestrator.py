from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

import structlog

from src.agent.events import (
    SessionEvent,
    SessionFinished,
    TextDelta,
    ToolCallInfo,
    ToolResultInfo,
)
from src.agent.model_client import ContentDelta, ToolCallsComplete
from src.agent.provider_registry import ModelHandle
from src.config.settings import DEFAULT_MAX_STEPS
from src.infra.errors import (
    GenerationError,
    PreconditionFailedError,
    SessionCancelledError,
    ToolArgumentsError,
    ToolCallError,
)
from src.infra.logging import bind_session
from src.tools.base import ToolDescriptor, tool_failed
from src.tools.validation import parse_and_validate, parse_arguments

logger = structlog.get_logger()

VALID_ROLES = frozenset({"system", "user", "assistant", "tool"})

SUPERSEDED = "superseded"
USER_ABORT = "user requested cancellation"

_END = object()


class SessionState(StrEnum):
    running = "running"
    finished = "finished"
    cancelled = "cancelled"
    failed = "failed"


class SessionToken:
    """Cancellation token owned by one session.

    cancel() is cooperative: it requests cancellation of the generation task,
    which observes it at its next await. Only the first request counts.
    """

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        self.reason: str | None = None
        self._task: asyncio.Task[Any] | None = None

    def attach(self, task: asyncio.Task[Any]) -> None:
        self._task = task

    @property
    def cancelled(self) -> bool:
        return self.reason is not None

    def cancel(self, reason: str) -> bool:
        if self.reason is not None or self._task is None or self._task.done():
            return False
        self.reason = reason
        self._task.cancel(msg=reason)
        return True


@dataclass
class SessionStats:
    steps: int = 0
    model_requests: int = 0
    repair_requests: int = 0


class SessionHandle:
    """Live view of one generation session.

    Iterate it for SessionEvents. When the stream ends the iterator raises
    SessionCancelledError if the session was cancelled and GenerationError if
    it failed; a normal end yields SessionFinished as the last event.
    """

    def __init__(self, session_id: str, token: SessionToken) -> None:
        self.session_id = session_id
        self.token = token
        self.state = SessionState.running
        self.stats = SessionStats()
        self.error: BaseException | None = None
        self._events: asyncio.Queue[Any] = asyncio.Queue()
        self._task: asyncio.Task[None] | None = None

    @property
    def done(self) -> bool:
        return self.state is not SessionState.running

    def cancel(self, reason: str = USER_ABORT) -> bool:
        return self.token.cancel(reason)

    def emit(self, event: SessionEvent) -> None:
        self._events.put_nowait(event)

    def __aiter__(self) -> AsyncIterator[SessionEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[SessionEvent]:
        while True:
            item = await self._events.get()
            if item is _END:
                break
            yield item
        self._raise_terminal()

    async def wait(self) -> SessionFinished:
        """Drain the session and return its SessionFinished event."""
        finished: SessionFinished | None = None
        async for event in self:
            if isinstance(event, SessionFinished):
                finished = event
        if finished is None:
            raise GenerationError(f"Session {self.session_id} ended without a finish event")
        return finished

    async def join(self) -> None:
        """Wait until the generation task has fully stopped."""
        if self._task is not None and not self._task.done():
            await asyncio.wait({self._task})

    def _raise_terminal(self) -> None:
        if self.state is SessionState.cancelled:
            raise SessionCancelledError(self.session_id, self.token.reason or "cancelled")
        if self.state is SessionState.failed:
            raise GenerationError(str(self.error)) from self.error

    def _start(self, task: asyncio.Task[None]) -> None:
        self._task = task
        self.token.attach(task)

    def _settle(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            self.state = SessionState.cancelled
            if self.token.reason is None:
                self.token.reason = "cancelled"
        elif task.exception() is not None:
            self.state = SessionState.failed
            self.error = task.exception()
        else:
            self.state = SessionState.finished
        self._events.put_nowait(_END)


class StreamOrchestrator:
    """Runs at most one generation session at a time.

    The active session lives in an owned nullable slot. Starting a session
    while another is active cancels the old one and waits for it to finish
    its cleanup before the slot is reused.
    """

    def __init__(
        self,
        *,
        max_steps: int = DEFAULT_MAX_STEPS,
        repair_enabled: bool = True,
        repair_temperature: float | None = None,
    ) -> None:
        if max_steps < 1:
            raise ValueError(f"max_steps must be >= 1, got {max_steps}")
        self._max_steps = max_steps
        self._repair_enabled = repair_enabled
        self._repair_temperature = repair_temperature
        self._active: SessionHandle | None = None

    @property
    def active(self) -> SessionHandle | None:
        return self._active

    @property
    def active_session_id(self) -> str | None:
        return self._active.session_id if self._active else None

    async def start_session(
        self,
        session_id: str,
        model_handle: ModelHandle | None,
        history: list[dict[str, Any]],
        custom_instructions: str,
        effective_tools: dict[str, ToolDescriptor],
    ) -> SessionHandle:
        """Start generating for session_id and return its live handle.

        Raises PreconditionFailedError, with no side effects, when the model
        handle or history is unusable.
        """
        _check_preconditions(model_handle, history)
        messages = _with_instructions(history, custom_instructions, session_id)

        while self._active is not None:
            previous = self._active
            logger.info(
                "session_superseded",
                previous_session_id=previous.session_id,
                session_id=session_id,
            )
            previous.cancel(SUPERSEDED)
            await previous.join()
            self._clear_if_current(previous)

        handle = SessionHandle(session_id, SessionToken(session_id))
        self._active = handle
        task = asyncio.get_running_loop().create_task(
            self._run(handle, model_handle, messages, effective_tools),
            name=f"session:{session_id}",
        )
        handle._start(task)
        task.add_done_callback(lambda t: self._on_done(handle, t))
        logger.info(
            "session_started",
            session_id=session_id,
            provider=model_handle.provider,
            model=model_handle.model,
            tool_count=len(effective_tools),
            max_steps=self._max_steps,
        )
        return handle

    def abort_active(self, reason: str = USER_ABORT) -> str | None:
        """Cancel the active session. Returns its id, or None if none was active."""
        handle = self._active
        if handle is None:
            logger.warning("abort_without_active_session", reason=reason)
            return None
        self._active = None
        handle.cancel(reason)
        logger.info("session_abort_requested", session_id=handle.session_id, reason=reason)
        return handle.session_id

    def _clear_if_current(self, handle: SessionHandle) -> None:
        if self._active is handle:
            self._active = None

    def _on_done(self, handle: SessionHandle, task: asyncio.Task[None]) -> None:
        handle._settle(task)
        self._clear_if_current(handle)
        if handle.state is SessionState.cancelled:
            logger.info(
                "session_cancelled", session_id=handle.session_id, reason=handle.token.reason
            )
        elif handle.state is SessionState.failed:
            logger.error(
                "session_failed", session_id=handle.session_id, error=str(handle.error)
            )

    async def _run(
        self,
        handle: SessionHandle,
        model_handle: ModelHandle,
        messages: list[dict[str, Any]],
        tools: dict[str, ToolDescriptor],
    ) -> None:
        bind_session(handle.session_id)
        history_len = len(messages)
        tools_schema = [t.to_function_schema() for t in tools.values()] or None
        client = model_handle.client

        for step in range(self._max_steps):
            handle.stats.steps += 1
            handle.stats.model_requests += 1
            step_messages = list(messages)
            collected_text = ""
            tool_calls: list[dict[str, str]] | None = None

            async for event in client.chat_stream_with_tools(
                step_messages, model_handle.model, tools=tools_schema
            ):
                if isinstance(event, ContentDelta):
                    collected_text += event.text
                    handle.emit(TextDelta(content=event.text))
                elif isinstance(event, ToolCallsComplete):
                    tool_calls = event.tool_calls

            if not tool_calls:
                messages.append({"role": "assistant", "content": collected_text})
                self._finish(handle, "stop", messages[history_len:])
                return

            messages.append({
                "role": "assistant",
                "content": collected_text,
                "tool_calls": [_wire_tool_call(tc) for tc in tool_calls],
            })
            for tc in tool_calls:
                handle.emit(ToolCallInfo(
                    tool_name=tc["name"],
                    arguments=_display_arguments(tc["arguments"]),
                    call_id=tc["id"],
                ))
                result, repaired = await self._invoke_tool(
                    handle, model_handle, step_messages, tools_schema, tools, tc
                )
                messages.append({
                    "role": "tool",
                    "tool_call_id": tc["id"],
                    "content": json.dumps(result, default=str),
                })
                handle.emit(ToolResultInfo(
                    tool_name=tc["name"], call_id=tc["id"], result=result, repaired=repaired
                ))

            logger.info(
                "tool_step_complete",
                step=step + 1,
                tools_called=len(tool_calls),
                session_id=handle.session_id,
            )

        logger.warning(
            "step_budget_exhausted", max_steps=self._max_steps, session_id=handle.session_id
        )
        self._finish(handle, "step_budget_exhausted", messages[history_len:])

    def _finish(
        self, handle: SessionHandle, reason: str, new_messages: list[dict[str, Any]]
    ) -> None:
        handle.emit(SessionFinished(
            session_id=handle.session_id,
            finish_reason=reason,
            steps=handle.stats.steps,
            model_requests=handle.stats.model_requests,
            repair_requests=handle.stats.repair_requests,
            messages=new_messages,
        ))
        logger.info(
            "session_finished",
            session_id=handle.session_id,
            finish_reason=reason,
            steps=handle.stats.steps,
        )

    async def _invoke_tool(
        self,
        handle: SessionHandle,
        model_handle: ModelHandle,
        step_messages: list[dict[str, Any]],
        tools_schema: list[dict] | None,
        tools: dict[str, ToolDescriptor],
        tool_call: dict[str, str],
    ) -> tuple[dict[str, Any], bool]:
        """Validate, repair if needed, and execute one tool call.

        Never raises for tool-level problems: every failure becomes a
        {"success": False, "error": ...} result for the model.
        """
        name = tool_call["name"]
        tool = tools.get(name)
        if tool is None:
            logger.warning("unknown_tool", tool_name=name, session_id=handle.session_id)
            return tool_failed(f"Unknown tool: {name}"), False

        repaired = False
        try:
            arguments = parse_and_validate(tool_call["arguments"], tool.input_schema)
        except ToolArgumentsError as e:
            if not self._repair_enabled:
                return tool_failed(str(e)), False
            try:
                arguments = await self._repair_tool_call(
                    handle, model_handle, step_messages, tools_schema, tool, tool_call, e
                )
            except ToolCallError as repair_error:
                logger.warning(
                    "tool_call_repair_failed",
                    tool_name=name,
                    error=str(repair_error),
                    session_id=handle.session_id,
                )
                return tool_failed(f"{e} (repair failed: {repair_error})"), False
            repaired = True

        try:
            result = await tool.execute(arguments)
        except Exception as e:
            logger.exception("tool_execution_failed", tool_name=name)
            return tool_failed(f"Tool {name} failed: {e}"), repaired
        if not isinstance(result, dict):
            return tool_failed(f"Tool {name} returned {type(result).__name__}, expected dict"), repaired
        logger.info(
            "tool_executed", tool_name=name, success=bool(result.get("success")), repaired=repaired
        )
        return result, repaired

    async def _repair_tool_call(
        self,
        handle: SessionHandle,
        model_handle: ModelHandle,
        step_messages: list[dict[str, Any]],
        tools_schema: list[dict] | None,
        tool: ToolDescriptor,
        tool_call: dict[str, str],
        error: ToolArgumentsError,
    ) -> dict[str, Any]:
        """One non-streaming request asking the model to fix its arguments.

        Returns validated replacement arguments. Raises ToolCallError when the
        model does not answer with a valid call to the same tool, or when the
        request itself fails. CancelledError is not caught.
        """
        logger.warning(
            "tool_call_repair_attempt",
            tool_name=tool.id,
            error=str(error),
            session_id=handle.session_id,
        )
        repair_messages = [
            *step_messages,
            {"role": "assistant", "content": "", "tool_calls": [_wire_tool_call(tool_call)]},
            {
                "role": "tool",
                "tool_call_id": tool_call["id"],
                "content": (
                    f"Error during execution: {error}. Please provide corrected arguments."
                ),
            },
        ]
        handle.stats.repair_requests += 1
        handle.stats.model_requests += 1
        try:
            reply = await model_handle.client.chat_completion(
                repair_messages,
                model_handle.model,
                tools=tools_schema,
                temperature=self._repair_temperature,
            )
        except Exception as e:
            raise ToolCallError(f"repair request failed: {e}") from e

        for candidate in getattr(reply, "tool_calls", None) or []:
            function = getattr(candidate, "function", None)
            if function is None or function.name != tool.id:
                continue
            try:
                arguments = parse_and_validate(function.arguments, tool.input_schema)
            except ToolArgumentsError as e:
                raise ToolCallError(f"repaired arguments still invalid: {e}") from e
            logger.info("tool_call_repaired", tool_name=tool.id, session_id=handle.session_id)
            return arguments
        raise ToolCallError("model did not return a corrected call")


def _check_preconditions(model_handle: ModelHandle | None, history: list[dict[str, Any]]) -> None:
    if model_handle is None or model_handle.client is None:
        raise PreconditionFailedError("A resolved model handle is required")
    if not model_handle.enabled:
        raise PreconditionFailedError(
            f"Provider '{model_handle.provider}' is disabled. Enable it in settings."
        )
    if not history:
        raise PreconditionFailedError("History must contain at least one message")
    for index, message in enumerate(history):
        role = message.get("role") if isinstance(message, dict) else None
        if role not in VALID_ROLES:
            raise PreconditionFailedError(f"Message {index} has invalid role: {role!r}")


def _with_instructions(
    history: list[dict[str, Any]], custom_instructions: str, session_id: str
) -> list[dict[str, Any]]:
    """Copy of history with custom instructions prepended as a system message.

    An existing system message always wins; instructions are then skipped.
    """
    messages = [dict(m) for m in history]
    if not custom_instructions.strip():
        return messages
    if any(m["role"] == "system" for m in messages):
        logger.warning("custom_instructions_skipped_existing_system", session_id=session_id)
        return messages
    return [{"role": "system", "content": custom_instructions}, *messages]


def _wire_tool_call(tool_call: dict[str, str]) -> dict[str, Any]:
    return {
        "id": tool_call["id"],
        "type": "function",
        "function": {"name": tool_call["name"], "arguments": tool_call["arguments"]},
    }


def _display_arguments(raw: str) -> dict:
    try:
        return parse_arguments(raw)
    except ToolArgumentsError:
        return {}
