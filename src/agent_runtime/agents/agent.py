"""Agent: run or stream one conversation turn over a chosen model."""

import asyncio
import logging
import time
import uuid
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from langchain.agents import create_agent
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import HumanMessage
from langchain_core.tools import BaseTool
from langgraph.checkpoint.base import BaseCheckpointSaver

from .base import (
    EMPTY_QUERY_MESSAGE,
    NO_MODEL_MESSAGE,
    CancellationToken,
    PreconditionError,
    TelemetrySink,
)
from .events import ToolCallTracker, content_to_text, extract_reasoning, result_output
from ..config.runtime_config import RuntimeConfig, get_runtime_config
from ..llm.base import ModelNotFoundError, classify_provider_error
from ..llm.registry import ProviderRegistry
from ..memory.thread_store import BaseThreadStore, create_snapshot
from ..messages.canonicalizer import canonicalize_messages, get_message_text
from ..models.agent_models import (
    AgentResult,
    CheckpointMessageChunk,
    ReasoningTokenChunk,
    ResultChunk,
    StreamChunk,
    TokenChunk,
    ToolEndChunk,
    ToolStartChunk,
)
from ..models.llm_models import ModelOptions
from ..models.message_models import ThreadMessage
from ..models.thread_models import ERROR_CHANNEL, ThreadError, ThreadHistory

logger = logging.getLogger(__name__)

TITLE_PROMPT = (
    "Generate a short, concise title (max 5 words) for the following user question. "
    "Do not use quotes or markdown.\n\nUser question:\n{message}"
)
TITLE_STRIP_CHARS = "\"'`“”‘’ \t\r\n"

EngineFactory = Callable[..., Any]

_STREAM_END = object()


def build_agent_engine(
    model: BaseChatModel,
    tools: Sequence[BaseTool],
    system_prompt: str,
    checkpointer: Optional[BaseCheckpointSaver],
) -> Any:
    """Build the default LangGraph agent engine."""
    return create_agent(
        model=model,
        tools=list(tools),
        system_prompt=system_prompt,
        checkpointer=checkpointer,
    )


def summarize_errors(pending_writes: Optional[Sequence[Sequence[Any]]]) -> Tuple[Optional[ThreadError], int]:
    """
    Count reserved error-channel writes and return the last one.

    GOTCHA: writes are either [channel, value] or [task_id, channel, value]

    Args:
        pending_writes: Pending writes of one checkpoint

    Returns:
        (last error or None, number of error writes)
    """
    last_error: Optional[ThreadError] = None
    count = 0
    for write in pending_writes or []:
        if len(write) == 2:
            channel, value = write[0], write[1]
        elif len(write) >= 3:
            channel, value = write[1], write[2]
        else:
            continue
        if channel != ERROR_CHANNEL:
            continue
        count += 1
        last_error = _error_from_value(value)
    return last_error, count


def _error_from_value(value: Any) -> ThreadError:
    if isinstance(value, BaseException):
        return ThreadError(message=str(value) or "Unknown error", name=type(value).__name__)
    if isinstance(value, dict):
        message = value.get("message")
        name = value.get("name")
        return ThreadError(
            message=str(message) if message is not None else "Unknown error",
            name=str(name) if name is not None else None,
        )
    if value is None:
        return ThreadError()
    return ThreadError(message=str(value))


def last_assistant_message(messages: Sequence[ThreadMessage]) -> Optional[ThreadMessage]:
    for message in reversed(messages):
        if message.role == "assistant":
            return message
    return None


class Agent:
    """
    Provider-agnostic conversational agent.

    Lifecycle: unconfigured -> choose_model() -> configured. set_prompt()
    and bind_tools() mark the agent dirty and the execution engine is
    rebuilt before the next run.

    PATTERN: one LangGraph engine per configuration, rebuilt lazily
    CRITICAL: precondition failures raise before any provider call
    CRITICAL: cancellation is silent, a cancelled turn emits no result and raises nothing
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        checkpointer: Optional[BaseCheckpointSaver] = None,
        thread_store: Optional[BaseThreadStore] = None,
        config: Optional[RuntimeConfig] = None,
        telemetry: Optional[TelemetrySink] = None,
        engine_factory: Optional[EngineFactory] = None,
    ):
        """
        Initialize agent.

        Args:
            registry: Provider registry used to build model handles
            checkpointer: LangGraph checkpointer for conversation state
            thread_store: Store receiving thread summary metadata, defaults to the
                checkpointer when it also implements BaseThreadStore
            config: Runtime configuration
            telemetry: Optional run observer
            engine_factory: Builds the execution engine from model, tools, prompt and checkpointer
        """
        self.registry = registry
        self.checkpointer = checkpointer
        if thread_store is None and isinstance(checkpointer, BaseThreadStore):
            thread_store = checkpointer
        self.thread_store = thread_store
        self.config = config or get_runtime_config()
        self.telemetry = telemetry
        self.engine_factory = engine_factory or build_agent_engine

        self._provider_id: Optional[str] = None
        self._model_id: Optional[str] = None
        self._model: Optional[BaseChatModel] = None
        self._prompt = self.config.default_system_prompt
        self._tools: List[BaseTool] = []
        self._engine: Any = None
        self._dirty = True

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def is_configured(self) -> bool:
        return self._model is not None

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    @property
    def selected_model(self) -> Optional[str]:
        """Selected model as ``provider:model``."""
        if self._provider_id is None or self._model_id is None:
            return None
        return f"{self._provider_id}:{self._model_id}"

    @property
    def system_prompt(self) -> str:
        return self._prompt

    @property
    def tools(self) -> List[BaseTool]:
        return list(self._tools)

    def choose_model(
        self,
        provider: str,
        model: Optional[str] = None,
        options: Optional[ModelOptions] = None,
    ) -> str:
        """
        Select the chat model used for subsequent runs.

        Args:
            provider: Registered provider id
            model: Model id, the provider's first listed chat model when omitted
            options: Temperature and context window

        Returns:
            The selected model id

        Raises:
            ProviderNotFoundError: If the provider is not registered
            ModelNotFoundError: If no model is given and the provider lists none
        """
        provider_id = self.registry.normalize_id(provider)
        model_id = model
        if not model_id:
            available = self.registry.list_chat_models(provider_id)
            if not available:
                raise ModelNotFoundError(provider_id, model, "chat")
            model_id = available[0]

        self._model = self.registry.create_chat_instance(provider_id, model_id, options)
        self._provider_id = provider_id
        self._model_id = model_id
        self._dirty = True
        logger.info(f"Selected model {provider_id}:{model_id}")
        return model_id

    def set_prompt(self, prompt: str) -> None:
        self._prompt = prompt
        self._dirty = True

    def bind_tools(self, tools: Sequence[BaseTool]) -> None:
        self._tools = list(tools)
        self._dirty = True

    def _get_engine(self) -> Any:
        if self._engine is None or self._dirty:
            self._engine = self.engine_factory(
                model=self._model,
                tools=list(self._tools),
                system_prompt=self._prompt,
                checkpointer=self.checkpointer,
            )
            self._dirty = False
            logger.debug(f"Built engine for {self.selected_model} with {len(self._tools)} tools")
        return self._engine

    def _check_preconditions(self, query: Any) -> None:
        if self._model is None:
            raise PreconditionError(NO_MODEL_MESSAGE)
        if not isinstance(query, str) or not query.strip():
            raise PreconditionError(EMPTY_QUERY_MESSAGE)

    def _build_config(
        self,
        run_id: str,
        thread_id: str,
        metadata: Optional[Dict[str, Any]],
        configurable: Optional[Dict[str, Any]],
    ) -> Dict[str, Any]:
        config: Dict[str, Any] = {
            "configurable": {**(configurable or {}), "thread_id": thread_id},
            "run_id": uuid.UUID(run_id),
        }
        if metadata:
            config["metadata"] = dict(metadata)
        if self.telemetry is not None:
            config["callbacks"] = self.telemetry.get_callbacks()
        return config

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _race(self, awaitable: Awaitable[Any], token: Optional[CancellationToken]) -> Any:
        """
        Await a step unless the token fires first.

        Raises:
            asyncio.CancelledError: If the token fires before the step completes
        """
        if token is None:
            return await awaitable
        if token.cancelled and asyncio.iscoroutine(awaitable):
            awaitable.close()
        token.raise_if_cancelled()

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(token.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task in done:
            return task.result()
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise asyncio.CancelledError()

    def _reclassify(self, error: Exception) -> Exception:
        typed = classify_provider_error(self._provider_id or "unknown", error)
        return typed if typed is not None else error

    async def run(
        self,
        query: str,
        thread_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        configurable: Optional[Dict[str, Any]] = None,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> Optional[AgentResult]:
        """
        Run one conversation turn to completion.

        Args:
            query: User message
            thread_id: Conversation thread, a fresh run id when omitted
            metadata: Run metadata passed to the engine
            configurable: Extra configurable values for the engine
            cancellation_token: Optional cancellation signal

        Returns:
            AgentResult, or None if the run was cancelled

        Raises:
            PreconditionError: If no model is chosen or the query is blank
            ProviderAuthError: If the provider rejects credentials
            ProviderEndpointError: If the provider is unreachable
        """
        self._check_preconditions(query)
        run_id = str(uuid.uuid4())
        thread_id = thread_id or run_id
        engine = self._get_engine()
        config = self._build_config(run_id, thread_id, metadata, configurable)
        inputs = {"messages": [{"role": "user", "content": query}]}

        started = time.perf_counter()
        try:
            raw = await self._race(engine.ainvoke(inputs, config=config), cancellation_token)
        except asyncio.CancelledError:
            if cancellation_token is not None and cancellation_token.cancelled:
                logger.info(f"Run {run_id} cancelled")
                return None
            raise
        except Exception as e:
            typed = self._reclassify(e)
            if typed is e:
                raise
            raise typed from e

        result = self._build_result(run_id, thread_id, raw, started)
        await self._persist_thread_metadata(thread_id, run_id, result.messages)
        self._notify_telemetry(result)
        return result

    def stream_tokens(
        self,
        query: str,
        thread_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        configurable: Optional[Dict[str, Any]] = None,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[StreamChunk]:
        """
        Stream one conversation turn as typed chunks.

        Preconditions are checked immediately; the returned iterator is
        lazy and single-consumer, each chunk is produced only when the
        consumer asks for it.

        Yields:
            token, reasoning_token, tool_start and tool_end chunks while the
            engine runs, then one result chunk and, when available, one
            checkpoint_message chunk

        Raises:
            PreconditionError: If no model is chosen or the query is blank
        """
        self._check_preconditions(query)
        run_id = str(uuid.uuid4())
        return self._stream(query, run_id, thread_id or run_id, metadata, configurable, cancellation_token)

    async def _stream(
        self,
        query: str,
        run_id: str,
        thread_id: str,
        metadata: Optional[Dict[str, Any]],
        configurable: Optional[Dict[str, Any]],
        token: Optional[CancellationToken],
    ) -> AsyncIterator[StreamChunk]:
        engine = self._get_engine()
        config = self._build_config(run_id, thread_id, metadata, configurable)
        inputs = {"messages": [{"role": "user", "content": query}]}
        tracker = ToolCallTracker()
        raw_result: Optional[Dict[str, Any]] = None

        started = time.perf_counter()
        events = engine.astream_events(inputs, config=config, version="v2")
        try:
            while True:
                if token is not None and token.cancelled:
                    logger.info(f"Stream {run_id} cancelled")
                    return
                try:
                    event = await self._race(self._next_event(events), token)
                except asyncio.CancelledError:
                    if token is not None and token.cancelled:
                        logger.info(f"Stream {run_id} cancelled")
                        return
                    raise
                if event is _STREAM_END:
                    break

                for chunk in self._chunks_for_event(event, run_id, thread_id, tracker):
                    yield chunk
                output = result_output(event)
                if output is not None:
                    raw_result = output
        except Exception as e:
            typed = self._reclassify(e)
            if typed is e:
                raise
            raise typed from e
        finally:
            await events.aclose()

        if token is not None and token.cancelled:
            return
        if raw_result is None:
            raise RuntimeError("Agent streaming completed without producing a final output.")

        result = self._build_result(run_id, thread_id, raw_result, started)
        await self._persist_thread_metadata(thread_id, run_id, result.messages)
        self._notify_telemetry(result)
        yield ResultChunk(run_id=run_id, thread_id=thread_id, result=result)

        persisted = await self._latest_checkpoint_messages(thread_id)
        message = last_assistant_message(persisted)
        if message is not None:
            yield CheckpointMessageChunk(run_id=run_id, thread_id=thread_id, message=message)

    @staticmethod
    async def _next_event(events: AsyncIterator[Dict[str, Any]]) -> Any:
        try:
            return await events.__anext__()
        except StopAsyncIteration:
            return _STREAM_END

    def _chunks_for_event(
        self,
        event: Dict[str, Any],
        run_id: str,
        thread_id: str,
        tracker: ToolCallTracker,
    ) -> List[StreamChunk]:
        kind = event.get("event")
        data = event.get("data") or {}
        chunks: List[StreamChunk] = []

        if kind == "on_chat_model_stream":
            chunk = data.get("chunk")
            reasoning = extract_reasoning(chunk)
            if reasoning:
                chunks.append(ReasoningTokenChunk(run_id=run_id, thread_id=thread_id, token=reasoning))
            text = content_to_text(getattr(chunk, "content", chunk))
            if text:
                chunks.append(TokenChunk(run_id=run_id, thread_id=thread_id, token=text))

        elif kind == "on_chat_model_end":
            tracker.announce(data.get("output"))

        elif kind == "on_tool_start":
            name = event.get("name") or "unknown_tool"
            call_id = tracker.start(str(event.get("run_id", "")), name)
            chunks.append(
                ToolStartChunk(
                    run_id=run_id,
                    thread_id=thread_id,
                    tool_call_id=call_id,
                    name=name,
                    input=data.get("input"),
                )
            )

        elif kind == "on_tool_end":
            output = data.get("output")
            call_id, name = tracker.finish(str(event.get("run_id", "")), event.get("name"), output)
            chunks.append(
                ToolEndChunk(
                    run_id=run_id,
                    thread_id=thread_id,
                    tool_call_id=call_id,
                    name=name,
                    output=getattr(output, "content", output),
                )
            )

        return chunks

    def _build_result(
        self,
        run_id: str,
        thread_id: str,
        raw: Any,
        started: float,
    ) -> AgentResult:
        raw_messages = raw.get("messages") if isinstance(raw, dict) else None
        messages = canonicalize_messages(raw_messages)
        return AgentResult(
            run_id=run_id,
            thread_id=thread_id,
            duration_ms=(time.perf_counter() - started) * 1000,
            messages=messages,
            response=get_message_text(messages[-1]) if messages else "",
            raw=raw,
        )

    def _notify_telemetry(self, result: AgentResult) -> None:
        if self.telemetry is None:
            return
        try:
            self.telemetry.on_run_complete(result)
        except Exception as e:
            logger.warning(f"Telemetry sink failed for run {result.run_id}: {e}")

    # ------------------------------------------------------------------
    # Thread state
    # ------------------------------------------------------------------

    async def _persist_thread_metadata(
        self,
        thread_id: str,
        run_id: str,
        messages: Sequence[ThreadMessage],
    ) -> None:
        """Write summary metadata for a completed run. Failures are logged."""
        if self.thread_store is None:
            return
        try:
            existing = await self.thread_store.read(thread_id)
            metadata: Dict[str, Any] = dict(existing.metadata or {}) if existing else {}
            metadata["lastRunId"] = run_id
            metadata["model"] = self.selected_model
            if messages:
                last = messages[-1]
                metadata["lastMessagePreview"] = get_message_text(last)[: self.config.message_preview_length]
                metadata["lastMessageRole"] = last.role
            snapshot = create_snapshot(
                thread_id,
                title=existing.title if existing else None,
                metadata=metadata,
                created_at=existing.created_at if existing else None,
            )
            await self.thread_store.write(snapshot)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to persist metadata for thread {thread_id}: {e}")

    async def _latest_checkpoint_messages(self, thread_id: str) -> List[ThreadMessage]:
        if self.checkpointer is None:
            return []
        try:
            checkpoint = await self.checkpointer.aget_tuple({"configurable": {"thread_id": thread_id}})
        except Exception as e:
            logger.warning(f"Could not read latest checkpoint for thread {thread_id}: {e}")
            return []
        if checkpoint is None:
            return []
        values = checkpoint.checkpoint.get("channel_values") or {}
        return canonicalize_messages(values.get("messages"))

    async def get_thread_history(self, thread_id: str) -> Optional[ThreadHistory]:
        """
        Load a thread's metadata, messages and error summary.

        GOTCHA: read failures degrade to missing data rather than raising

        Args:
            thread_id: Thread identifier

        Returns:
            ThreadHistory, or None if neither metadata nor checkpoints exist
        """
        snapshot = None
        if self.thread_store is not None:
            try:
                snapshot = await self.thread_store.read(thread_id)
            except Exception as e:
                logger.warning(f"Could not read metadata for thread {thread_id}: {e}")

        checkpoint = None
        if self.checkpointer is not None:
            try:
                checkpoint = await self.checkpointer.aget_tuple({"configurable": {"thread_id": thread_id}})
            except Exception as e:
                logger.warning(f"Could not read checkpoint for thread {thread_id}: {e}")

        if snapshot is None and checkpoint is None:
            return None

        messages: List[ThreadMessage] = []
        last_error, error_count = None, 0
        if checkpoint is not None:
            values = checkpoint.checkpoint.get("channel_values") or {}
            messages = canonicalize_messages(values.get("messages"))
            last_error, error_count = summarize_errors(checkpoint.pending_writes)

        return ThreadHistory(
            thread_id=thread_id,
            title=snapshot.title if snapshot else None,
            metadata=snapshot.metadata if snapshot else None,
            created_at=snapshot.created_at if snapshot else None,
            updated_at=snapshot.updated_at if snapshot else None,
            messages=messages,
            last_error=last_error,
            error_count=error_count,
        )

    async def generate_title(self, user_message: str) -> str:
        """
        Generate a short thread title from the first user message.

        Only the new message is sent, so this can run alongside the main reply.

        Raises:
            PreconditionError: If no model is chosen
        """
        if self._model is None:
            raise PreconditionError(NO_MODEL_MESSAGE)
        prompt = TITLE_PROMPT.format(message=user_message)
        try:
            response = await self._model.ainvoke([HumanMessage(content=prompt)])
        except Exception as e:
            typed = self._reclassify(e)
            if typed is e:
                raise
            raise typed from e
        return content_to_text(response.content).strip(TITLE_STRIP_CHARS)

    async def title_thread(self, thread_id: str, user_message: str) -> str:
        """
        Generate a title for a thread and store it.

        The title is written to the thread snapshot and, when the store keeps
        one file per thread, the file is renamed to include it. Store failures
        are logged.

        Args:
            thread_id: Thread to title
            user_message: First user message of the thread

        Returns:
            The generated title
        """
        title = await self.generate_title(user_message)
        if not title or self.thread_store is None:
            return title

        try:
            existing = await self.thread_store.read(thread_id)
            snapshot = create_snapshot(
                thread_id,
                title=title,
                metadata=existing.metadata if existing else None,
                created_at=existing.created_at if existing else None,
            )
            await self.thread_store.write(snapshot)
            self.thread_store.rename_thread_file(thread_id, title)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to store title for thread {thread_id}: {e}")
        return title
