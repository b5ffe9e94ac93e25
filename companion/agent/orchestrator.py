"""
Turn orchestrator — runs one inbound message through the companion pipeline.

    Authenticating -> ContextBuilding -> ModelInvoking -> ToolDispatching
        -> Composing -> Done

A turn ends in Failed only from Authenticating (bad credential or unreadable
token store) or ModelInvoking (model service error). Everything after the
model call fails soft. Log lines emitted during a turn carry its
conversation id. Each call is a single attempt: no retries, no fallback model.
"""

from __future__ import annotations

from pathlib import Path

from companion.agent.composer import compose
from companion.agent.context_builder import ContextBuilder
from companion.agent.llm_router import LLMRouter, UpstreamModelError
from companion.agent.tool_executor import ToolExecutor, parse_tool_calls
from companion.agent.turn import TurnContext, TurnRequest, TurnResult, TurnState
from companion.gateway.auth import AuthError, AuthManager
from companion.gateway.config import CompanionConfig
from companion.storage.store import Store, StoreError
from companion.tools.registry import ToolRegistry
from companion.utils.logging import get_logger, turn_log_context
from companion.utils.timestamps import utcnow

logger = get_logger("orchestrator")

AUTH_FAILED_MESSAGE = "Unauthorized"
MODEL_FAILED_MESSAGE = "AI service error"


class TurnOrchestrator:
    """
    Usage:
        orchestrator = TurnOrchestrator(config, auth_manager)
        result = await orchestrator.handle_turn("Bearer ...", TurnRequest(...))
        result.reply if result.ok else result.error
    """

    def __init__(
        self,
        config: CompanionConfig,
        auth_manager: AuthManager,
        router: LLMRouter | None = None,
        registry: ToolRegistry | None = None,
        context_builder: ContextBuilder | None = None,
        db_path: Path | None = None,
    ):
        self.config = config
        self.auth = auth_manager
        self.db_path = db_path or config.database_path
        self._router = router
        if registry is None:
            registry = ToolRegistry()
            registry.load_builtins(config)
        self.registry = registry
        self.context_builder = context_builder or ContextBuilder(config=config)
        self.executor = ToolExecutor(registry=self.registry, config=config)

    @property
    def router(self) -> LLMRouter:
        """Lazy-init the LLM router (reads the API key on first use)."""
        if self._router is None:
            self._router = LLMRouter(config=self.config)
        return self._router

    async def handle_turn(self, authorization: str | None, request: TurnRequest) -> TurnResult:
        store = Store(self.db_path)
        try:
            store.open()
        except StoreError as e:
            logger.error("turn_failed", state=TurnState.AUTHENTICATING.value, reason=str(e))
            return TurnResult(state=TurnState.FAILED, error=AUTH_FAILED_MESSAGE)
        try:
            with turn_log_context(conversation_id=request.conversation_id):
                return await self._run(store, authorization, request)
        finally:
            store.close()

    async def _run(self, store: Store, authorization: str | None, request: TurnRequest) -> TurnResult:
        state = _enter(TurnState.AUTHENTICATING)
        try:
            user_id = self.auth.authenticate(store, authorization)
        except AuthError as e:
            logger.warning("turn_failed", state=state.value, reason=str(e))
            return TurnResult(state=TurnState.FAILED, error=AUTH_FAILED_MESSAGE)
        except StoreError as e:
            # Token lookup failed; the caller cannot be identified
            logger.error("turn_failed", state=state.value, reason=str(e))
            return TurnResult(state=TurnState.FAILED, error=AUTH_FAILED_MESSAGE)

        turn = TurnContext(user_id=user_id, request=request, started_at=utcnow())

        _enter(TurnState.CONTEXT_BUILDING)
        turn.context = self.context_builder.assemble(store, turn)
        messages = self.context_builder.build_messages(turn.context, request.message)

        state = _enter(TurnState.MODEL_INVOKING)
        try:
            reply = await self.router.chat(
                messages=messages,
                tools=self.registry.get_tool_definitions() or None,
                tool_choice="auto",
            )
        except UpstreamModelError as e:
            logger.warning("turn_failed", state=state.value, reason=str(e))
            return TurnResult(state=TurnState.FAILED, error=MODEL_FAILED_MESSAGE)
        turn.model_content = reply.get("content") or ""
        turn.tool_calls = parse_tool_calls(reply.get("tool_calls"))

        _enter(TurnState.TOOL_DISPATCHING)
        if turn.tool_calls:
            turn.outcomes = await self.executor.execute_all(turn.tool_calls, turn, store)

        _enter(TurnState.COMPOSING)
        turn.reply = compose(turn.model_content, turn.fragments)

        logger.info(
            "turn_completed",
            user_id=user_id,
            tool_calls=len(turn.tool_calls),
            tools_failed=sum(1 for o in turn.outcomes if not o.success),
            degraded=turn.context.degraded,
        )
        _enter(TurnState.DONE)
        return TurnResult(
            state=TurnState.DONE,
            reply=turn.reply,
            tools_used=tuple(o.name for o in turn.outcomes if o.success),
        )


def _enter(state: TurnState) -> TurnState:
    logger.debug("turn_state", state=state.value)
    return state
