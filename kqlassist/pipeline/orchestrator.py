"""
kqlassist Confidence Router

LangGraph state machine for one user turn:

    generate → decide ─┬─→ execute → END
                       └─→ review ─┬─→ execute
                          ↑   │    ├─→ regenerate → decide
                          └───┘    └─→ END (cancel / no reviewer)
                          (edit)

- decide: auto-executes only in ``auto`` mode when confidence ≥ threshold
- review: the single suspension point for human input (async ReviewHandler)
- regenerate: capped per turn at ``max_attempts`` generation attempts
- execute: connector errors end the turn in FAILED, never retried here
"""

import logging
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, TypedDict

from langgraph.graph import END, StateGraph

from kqlassist.models.errors import KQLAssistError, RegenerationExhausted, ReviewRoundsExhausted
from kqlassist.models.query import (
    ExecutionMode,
    GeneratedQuery,
    RegenerationContext,
    ReviewAction,
    ReviewDecision,
    ReviewRequest,
    RouterState,
    TurnOutcome,
)
from kqlassist.models.result import QueryResult
from kqlassist.pipeline.deadline import Deadline

if TYPE_CHECKING:
    from kqlassist.agents.generator import QueryGenerator
    from kqlassist.agents.regenerator import QueryRegenerator
    from kqlassist.connectors.base import BaseTelemetryConnector

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE_THRESHOLD = 0.7
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_MAX_REVIEW_ROUNDS = 20
EDITED_QUERY_CONFIDENCE = 0.5
EDITED_QUERY_REASONING = "Manually edited query."
RAW_QUERY_REASONING = "Raw KQL supplied by the user."

ReviewHandler = Callable[[ReviewRequest], Awaitable[ReviewDecision]]


def decide_route(
    query: GeneratedQuery,
    mode: ExecutionMode | str,
    threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
) -> RouterState:
    """
    Decide whether a candidate executes directly or goes to review.

    Pure function. Raw input always executes; ``review-always`` always
    reviews; ``auto`` executes when confidence is at or above the threshold.
    """
    mode = ExecutionMode(mode)
    if mode is ExecutionMode.RAW:
        return RouterState.EXECUTING
    if mode is ExecutionMode.AUTO and query.confidence >= threshold:
        return RouterState.EXECUTING
    return RouterState.REVIEWING


# ============================================================================
# Pipeline State Schema
# ============================================================================


class TurnState(TypedDict, total=False):
    """State schema for one user turn."""

    # Input
    user_input: str
    mode: ExecutionMode
    schema_hint: str | None
    prior_context: str | None
    deadline: Deadline

    # Router
    state: RouterState
    query: GeneratedQuery | None
    history: list[GeneratedQuery]
    attempts: int
    review_rounds: int
    feedback: str | None
    cancelled: bool

    # Output
    result: QueryResult | None
    error: KQLAssistError | None


class QueryPipeline:
    """
    Confidence-gated generate → decide → execute pipeline.

    Usage:
        pipeline = QueryPipeline(generator, regenerator, connector, review_handler=prompt_user)
        outcome = await pipeline.run_turn("slowest requests in the last hour")
        if outcome.succeeded:
            print(outcome.result.primary_table.rows)
    """

    def __init__(
        self,
        generator: "QueryGenerator",
        regenerator: "QueryRegenerator",
        connector: "BaseTelemetryConnector",
        *,
        review_handler: ReviewHandler | None = None,
        mode: ExecutionMode | str = ExecutionMode.REVIEW_ALWAYS,
        confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        query_timeout: float | None = None,
        turn_timeout: float | None = None,
        max_review_rounds: int = DEFAULT_MAX_REVIEW_ROUNDS,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if max_review_rounds < 1:
            raise ValueError("max_review_rounds must be at least 1")
        if not 0.0 <= confidence_threshold <= 1.0:
            raise ValueError("confidence_threshold must be between 0 and 1")

        self.generator = generator
        self.regenerator = regenerator
        self.connector = connector
        self.review_handler = review_handler
        self.mode = ExecutionMode(mode)
        self.confidence_threshold = confidence_threshold
        self.max_attempts = max_attempts
        self.query_timeout = query_timeout
        self.turn_timeout = turn_timeout
        self.max_review_rounds = max_review_rounds

        self.graph = self._build_graph()

        logger.info(
            "QueryPipeline initialized",
            extra={
                "mode": self.mode.value,
                "threshold": confidence_threshold,
                "max_attempts": max_attempts,
            },
        )

    def _build_graph(self):
        """
        Build LangGraph state machine.

        Returns:
            Compiled LangGraph
        """
        workflow = StateGraph(TurnState)

        workflow.add_node("generate", self._run_generate)
        workflow.add_node("decide", self._run_decide)
        workflow.add_node("review", self._run_review)
        workflow.add_node("regenerate", self._run_regenerate)
        workflow.add_node("execute", self._run_execute)

        workflow.set_entry_point("generate")

        workflow.add_conditional_edges(
            "generate",
            self._route,
            {"decide": "decide", "end": END},
        )
        workflow.add_conditional_edges(
            "decide",
            self._route,
            {"execute": "execute", "review": "review", "end": END},
        )
        workflow.add_conditional_edges(
            "review",
            self._route_after_review,
            {
                "execute": "execute",
                "regenerate": "regenerate",
                "review": "review",
                "end": END,
            },
        )
        workflow.add_conditional_edges(
            "regenerate",
            self._route,
            {"decide": "decide", "end": END},
        )
        workflow.add_edge("execute", END)

        return workflow.compile()

    # ========================================================================
    # Public API
    # ========================================================================

    async def run_turn(
        self,
        user_input: str,
        *,
        mode: ExecutionMode | str | None = None,
        schema_hint: str | None = None,
        prior_context: str | None = None,
        deadline: Deadline | None = None,
    ) -> TurnOutcome:
        """
        Run one user turn to completion.

        Args:
            user_input: Question, or KQL itself in ``raw`` mode
            mode: Overrides the pipeline's execution mode for this turn
            schema_hint: JSON schema hint passed to generation
            prior_context: Summary of earlier turns passed to generation
            deadline: End-to-end deadline (defaults to ``turn_timeout``)

        Returns:
            TurnOutcome. Typed failures are reported in ``error`` with state
            FAILED; without a review handler a query needing review is
            returned with state REVIEWING.
        """
        turn_mode = ExecutionMode(mode) if mode is not None else self.mode
        initial_state: TurnState = {
            "user_input": user_input,
            "mode": turn_mode,
            "schema_hint": schema_hint,
            "prior_context": prior_context,
            "deadline": deadline or Deadline(self.turn_timeout),
            "state": RouterState.GENERATING,
            "query": None,
            "history": [],
            "attempts": 0,
            "review_rounds": 0,
            "feedback": None,
            "cancelled": False,
            "result": None,
            "error": None,
        }

        logger.info(
            f"Starting turn: {user_input[:100]}",
            extra={"mode": turn_mode.value},
        )
        start_time = time.time()

        final = await self.graph.ainvoke(
            initial_state,
            config={"recursion_limit": self._recursion_limit()},
        )

        outcome = TurnOutcome(
            state=final["state"],
            query=final.get("query"),
            result=final.get("result"),
            attempts=final.get("attempts", 0),
            history=list(final.get("history", [])),
            error=final.get("error"),
            cancelled=final.get("cancelled", False),
        )

        total_time = (time.time() - start_time) * 1000
        logger.info(
            f"Turn finished in {total_time:.1f}ms with state {outcome.state.value}",
            extra={
                "state": outcome.state.value,
                "attempts": outcome.attempts,
                "cancelled": outcome.cancelled,
            },
        )
        return outcome

    # ========================================================================
    # Nodes
    # ========================================================================

    async def _run_generate(self, state: TurnState) -> dict:
        user_input = state["user_input"]

        if state["mode"] is ExecutionMode.RAW:
            query = GeneratedQuery(
                query_text=user_input.strip(),
                confidence=1.0,
                reasoning=RAW_QUERY_REASONING,
            )
        else:
            try:
                query = await self.generator.generate(
                    user_input,
                    schema_hint=state.get("schema_hint"),
                    prior_context=state.get("prior_context"),
                    deadline=state["deadline"],
                )
            except KQLAssistError as e:
                return self._fail(e, "generate")

        return {
            "query": query,
            "history": [query],
            "attempts": 1,
            "state": RouterState.AWAITING_DECISION,
        }

    async def _run_decide(self, state: TurnState) -> dict:
        query = state["query"]
        route = decide_route(query, state["mode"], self.confidence_threshold)
        logger.info(
            f"Routing query to {route.value}",
            extra={
                "confidence": query.confidence,
                "threshold": self.confidence_threshold,
                "mode": state["mode"].value,
            },
        )
        return {"state": route}

    async def _run_review(self, state: TurnState) -> dict:
        if self.review_handler is None:
            logger.info("No review handler; returning pending query to caller")
            return {"state": RouterState.REVIEWING}

        rounds = state.get("review_rounds", 0) + 1
        query = state["query"]
        if rounds > self.max_review_rounds:
            return self._fail(
                ReviewRoundsExhausted(self.max_review_rounds, query.query_text), "review"
            )

        request = ReviewRequest(
            user_input=state["user_input"],
            query=query,
            attempt=state["attempts"],
            max_attempts=self.max_attempts,
            history=[item.query_text for item in state.get("history", [])],
            threshold=self.confidence_threshold,
        )

        try:
            decision = await state["deadline"].run(self.review_handler(request), "review")
        except KQLAssistError as e:
            return self._fail(e, "review")

        logger.info(
            f"Review decision: {decision.action.value}",
            extra={"action": decision.action.value, "attempt": state["attempts"]},
        )

        if decision.action is ReviewAction.EXECUTE:
            return {"state": RouterState.EXECUTING}

        if decision.action is ReviewAction.CANCEL:
            return {"state": RouterState.DONE, "cancelled": True}

        if decision.action is ReviewAction.EDIT:
            edited = (decision.edited_query or "").strip()
            if not edited:
                logger.warning("Empty edit ignored")
                return {"state": RouterState.REVIEWING, "review_rounds": rounds}
            edited_query = GeneratedQuery(
                query_text=edited,
                confidence=EDITED_QUERY_CONFIDENCE,
                reasoning=EDITED_QUERY_REASONING,
            )
            return {
                "query": edited_query,
                "history": [*state.get("history", []), edited_query],
                "review_rounds": rounds,
                "state": RouterState.REVIEWING,
            }

        # REGENERATE
        if state["attempts"] >= self.max_attempts:
            return self._fail(
                RegenerationExhausted(state["attempts"], self.max_attempts, query.query_text),
                "review",
            )
        return {
            "state": RouterState.GENERATING,
            "feedback": decision.feedback,
            "review_rounds": rounds,
        }

    async def _run_regenerate(self, state: TurnState) -> dict:
        previous = state["query"]
        context = RegenerationContext(
            previous_query_text=previous.query_text,
            attempt_number=state["attempts"] + 1,
            feedback=state.get("feedback"),
            previous_reasoning=previous.reasoning,
        )
        try:
            query = await self.regenerator.regenerate(
                state["user_input"],
                context,
                schema_hint=state.get("schema_hint"),
                deadline=state["deadline"],
            )
        except KQLAssistError as e:
            return self._fail(e, "regenerate")

        return {
            "query": query,
            "history": [*state.get("history", []), query],
            "attempts": context.attempt_number,
            "feedback": None,
            "state": RouterState.AWAITING_DECISION,
        }

    async def _run_execute(self, state: TurnState) -> dict:
        query = state["query"]
        try:
            result = await self.connector.execute(
                query.query_text,
                timeout=self.query_timeout,
                deadline=state["deadline"],
            )
        except KQLAssistError as e:
            return self._fail(e, "execute")
        return {"state": RouterState.DONE, "result": result}

    # ========================================================================
    # Routing
    # ========================================================================

    def _route(self, state: TurnState) -> str:
        current = state["state"]
        if current in (RouterState.FAILED, RouterState.DONE):
            return "end"
        if current is RouterState.AWAITING_DECISION:
            return "decide"
        if current is RouterState.EXECUTING:
            return "execute"
        return "review"

    def _route_after_review(self, state: TurnState) -> str:
        current = state["state"]
        if current is RouterState.EXECUTING:
            return "execute"
        if current is RouterState.GENERATING:
            return "regenerate"
        if current is RouterState.REVIEWING and self.review_handler is not None:
            return "review"
        return "end"

    def _recursion_limit(self) -> int:
        # generate, decide, execute, every review round and two steps per regeneration
        return 10 + self.max_review_rounds + 2 * self.max_attempts

    def _fail(self, error: KQLAssistError, stage: str) -> dict:
        logger.error(
            f"Turn failed during {stage}: {error.message}",
            extra={"stage": stage, "error": error.to_dict()},
        )
        return {"state": RouterState.FAILED, "error": error}
