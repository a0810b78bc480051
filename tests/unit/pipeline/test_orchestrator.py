"""
Unit tests for the QueryPipeline confidence router.

Tests:
- Routing by mode and confidence threshold
- Review actions (execute, regenerate, edit, cancel)
- Per-turn attempt cap
- Error propagation into FAILED outcomes
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from kqlassist.models import (
    DeadlineExceeded,
    ExecutionFailure,
    ExecutionMode,
    GeneratedQuery,
    GenerationFailure,
    QueryResult,
    RegenerationExhausted,
    ReviewRoundsExhausted,
    ResultTable,
    ReviewDecision,
    RouterState,
)
from kqlassist.pipeline import Deadline, QueryPipeline, decide_route


def _query(text: str, confidence: float = 0.85) -> GeneratedQuery:
    return GeneratedQuery(query_text=text, confidence=confidence, reasoning="because")


class ScriptedReviewer:
    """Review handler returning queued decisions and recording requests."""

    def __init__(self, *decisions: ReviewDecision):
        self.decisions = list(decisions)
        self.requests = []

    async def __call__(self, request):
        self.requests.append(request)
        return self.decisions.pop(0)


@pytest.fixture
def result():
    return QueryResult(tables=[ResultTable(rows=[[1]])])


@pytest.fixture
def generator():
    generator = AsyncMock()
    generator.generate = AsyncMock(return_value=_query("requests | take 10"))
    return generator


@pytest.fixture
def regenerator():
    regenerator = AsyncMock()
    regenerator.regenerate = AsyncMock(return_value=_query("requests | summarize count()"))
    return regenerator


@pytest.fixture
def connector(result):
    connector = AsyncMock()
    connector.execute = AsyncMock(return_value=result)
    return connector


@pytest.fixture
def make_pipeline(generator, regenerator, connector):
    def _create(**kwargs):
        return QueryPipeline(generator, regenerator, connector, **kwargs)

    return _create


class TestDecideRoute:
    """Pure routing decision."""

    def test_raw_always_executes(self):
        assert decide_route(_query("x", 0.0), ExecutionMode.RAW) is RouterState.EXECUTING

    def test_review_always_reviews(self):
        assert decide_route(_query("x", 1.0), "review-always") is RouterState.REVIEWING

    @pytest.mark.parametrize(
        "confidence,expected",
        [
            (0.69, RouterState.REVIEWING),
            (0.7, RouterState.EXECUTING),
            (0.85, RouterState.EXECUTING),
        ],
    )
    def test_auto_threshold_is_inclusive(self, confidence, expected):
        assert decide_route(_query("x", confidence), ExecutionMode.AUTO, 0.7) is expected


class TestConstruction:
    """Constructor validation."""

    def test_max_attempts_must_be_positive(self, make_pipeline):
        with pytest.raises(ValueError):
            make_pipeline(max_attempts=0)

    def test_max_review_rounds_must_be_positive(self, make_pipeline):
        with pytest.raises(ValueError):
            make_pipeline(max_review_rounds=0)

    def test_threshold_bounds(self, make_pipeline):
        with pytest.raises(ValueError):
            make_pipeline(confidence_threshold=1.5)


class TestRouting:
    """Mode and confidence routing through the graph."""

    @pytest.mark.asyncio
    async def test_auto_mode_executes_confident_query(self, make_pipeline, connector, result):
        reviewer = ScriptedReviewer()
        pipeline = make_pipeline(mode="auto", review_handler=reviewer)

        outcome = await pipeline.run_turn("top requests")

        assert outcome.state is RouterState.DONE
        assert outcome.succeeded is True
        assert outcome.result == result
        assert outcome.attempts == 1
        assert reviewer.requests == []
        connector.execute.assert_awaited_once()
        assert connector.execute.call_args.args[0] == "requests | take 10"

    @pytest.mark.asyncio
    async def test_auto_mode_reviews_low_confidence(self, make_pipeline, generator, connector):
        generator.generate.return_value = _query("requests", confidence=0.5)
        reviewer = ScriptedReviewer(ReviewDecision.execute())
        pipeline = make_pipeline(mode="auto", review_handler=reviewer)

        outcome = await pipeline.run_turn("top requests")

        assert outcome.state is RouterState.DONE
        assert len(reviewer.requests) == 1
        assert reviewer.requests[0].low_confidence is True
        connector.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_review_always_reviews_confident_query(self, make_pipeline):
        reviewer = ScriptedReviewer(ReviewDecision.execute())
        pipeline = make_pipeline(review_handler=reviewer)

        await pipeline.run_turn("top requests")

        assert len(reviewer.requests) == 1
        assert reviewer.requests[0].attempt == 1
        assert reviewer.requests[0].max_attempts == 3

    @pytest.mark.asyncio
    async def test_raw_mode_skips_generation(self, make_pipeline, generator, connector):
        pipeline = make_pipeline(mode="raw")

        outcome = await pipeline.run_turn("  traces | take 5  ")

        generator.generate.assert_not_called()
        assert outcome.query.query_text == "traces | take 5"
        assert outcome.query.confidence == 1.0
        assert connector.execute.call_args.args[0] == "traces | take 5"

    @pytest.mark.asyncio
    async def test_mode_override_per_turn(self, make_pipeline, connector):
        pipeline = make_pipeline(mode="review-always")

        outcome = await pipeline.run_turn("top requests", mode=ExecutionMode.AUTO)

        assert outcome.state is RouterState.DONE
        connector.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_without_reviewer_returns_pending_query(self, make_pipeline, connector):
        pipeline = make_pipeline()

        outcome = await pipeline.run_turn("top requests")

        assert outcome.state is RouterState.REVIEWING
        assert outcome.pending_review is True
        assert outcome.query.query_text == "requests | take 10"
        connector.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_schema_hint_and_context_passed_to_generator(self, make_pipeline, generator):
        pipeline = make_pipeline(mode="auto")

        await pipeline.run_turn("q", schema_hint='{"tables": []}', prior_context="earlier")

        kwargs = generator.generate.call_args.kwargs
        assert kwargs["schema_hint"] == '{"tables": []}'
        assert kwargs["prior_context"] == "earlier"


class TestReviewActions:
    """Reviewer decisions."""

    @pytest.mark.asyncio
    async def test_cancel(self, make_pipeline, connector):
        pipeline = make_pipeline(review_handler=ScriptedReviewer(ReviewDecision.cancel()))

        outcome = await pipeline.run_turn("top requests")

        assert outcome.state is RouterState.DONE
        assert outcome.cancelled is True
        assert outcome.result is None
        connector.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_regenerate_with_feedback(self, make_pipeline, regenerator, connector):
        reviewer = ScriptedReviewer(
            ReviewDecision.regenerate("count per hour instead"),
            ReviewDecision.execute(),
        )
        pipeline = make_pipeline(review_handler=reviewer)

        outcome = await pipeline.run_turn("top requests")

        context = regenerator.regenerate.call_args.args[1]
        assert context.previous_query_text == "requests | take 10"
        assert context.attempt_number == 2
        assert context.feedback == "count per hour instead"
        assert context.previous_reasoning == "because"

        assert outcome.attempts == 2
        assert [q.query_text for q in outcome.history] == [
            "requests | take 10",
            "requests | summarize count()",
        ]
        assert reviewer.requests[1].attempt == 2
        assert reviewer.requests[1].history == ["requests | take 10", "requests | summarize count()"]
        assert connector.execute.call_args.args[0] == "requests | summarize count()"

    @pytest.mark.asyncio
    async def test_regenerated_query_goes_back_through_decide(
        self, make_pipeline, generator, regenerator, connector
    ):
        generator.generate.return_value = _query("requests", confidence=0.5)
        regenerator.regenerate.return_value = _query("requests | count", confidence=0.85)
        reviewer = ScriptedReviewer(ReviewDecision.regenerate())
        pipeline = make_pipeline(mode="auto", review_handler=reviewer)

        outcome = await pipeline.run_turn("how many requests")

        assert outcome.state is RouterState.DONE
        assert len(reviewer.requests) == 1
        assert connector.execute.call_args.args[0] == "requests | count"

    @pytest.mark.asyncio
    async def test_attempt_cap(self, make_pipeline, regenerator, connector):
        reviewer = ScriptedReviewer(ReviewDecision.regenerate(), ReviewDecision.regenerate())
        pipeline = make_pipeline(review_handler=reviewer, max_attempts=2)

        outcome = await pipeline.run_turn("top requests")

        assert outcome.state is RouterState.FAILED
        assert isinstance(outcome.error, RegenerationExhausted)
        assert outcome.error.attempts == 2
        assert outcome.error.max_attempts == 2
        assert regenerator.regenerate.await_count == 1
        assert reviewer.requests[1].can_regenerate is False
        connector.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_single_attempt_cannot_regenerate(self, make_pipeline, regenerator):
        pipeline = make_pipeline(
            review_handler=ScriptedReviewer(ReviewDecision.regenerate()), max_attempts=1
        )

        outcome = await pipeline.run_turn("top requests")

        assert isinstance(outcome.error, RegenerationExhausted)
        regenerator.regenerate.assert_not_called()

    @pytest.mark.asyncio
    async def test_edit_then_execute(self, make_pipeline, connector):
        reviewer = ScriptedReviewer(
            ReviewDecision.edit("requests | where success == false"),
            ReviewDecision.execute(),
        )
        pipeline = make_pipeline(review_handler=reviewer)

        outcome = await pipeline.run_turn("failed requests")

        edited = reviewer.requests[1].query
        assert edited.query_text == "requests | where success == false"
        assert edited.confidence == 0.5
        assert outcome.attempts == 1
        assert connector.execute.call_args.args[0] == "requests | where success == false"

    @pytest.mark.asyncio
    async def test_empty_edit_ignored(self, make_pipeline, connector):
        reviewer = ScriptedReviewer(ReviewDecision.edit("   "), ReviewDecision.execute())
        pipeline = make_pipeline(review_handler=reviewer)

        await pipeline.run_turn("top requests")

        assert reviewer.requests[1].query.query_text == "requests | take 10"
        assert connector.execute.call_args.args[0] == "requests | take 10"

    @pytest.mark.asyncio
    async def test_endless_empty_edits_fail_the_turn(self, make_pipeline, connector):
        """A reviewer that never executes or cancels ends the turn with a typed error."""

        async def stubborn_reviewer(request):
            return ReviewDecision.edit("")

        pipeline = make_pipeline(review_handler=stubborn_reviewer, max_review_rounds=5)

        outcome = await pipeline.run_turn("top requests")

        assert outcome.state is RouterState.FAILED
        assert isinstance(outcome.error, ReviewRoundsExhausted)
        assert outcome.error.rounds == 5
        connector.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_default_review_rounds_stay_within_graph_limit(self, make_pipeline):
        async def stubborn_reviewer(request):
            return ReviewDecision.edit("requests | take 1")

        pipeline = make_pipeline(review_handler=stubborn_reviewer)

        outcome = await pipeline.run_turn("top requests")

        assert isinstance(outcome.error, ReviewRoundsExhausted)


class TestFailures:
    """Typed errors end the turn in FAILED."""

    @pytest.mark.asyncio
    async def test_generation_failure(self, make_pipeline, generator, connector):
        generator.generate.side_effect = GenerationFailure("QueryGenerator", "LLM down")
        pipeline = make_pipeline(mode="auto")

        outcome = await pipeline.run_turn("top requests")

        assert outcome.state is RouterState.FAILED
        assert isinstance(outcome.error, GenerationFailure)
        connector.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_execution_failure_not_retried(self, make_pipeline, connector):
        connector.execute.side_effect = ExecutionFailure("LogAnalytics", "Syntax error")
        pipeline = make_pipeline(mode="auto")

        outcome = await pipeline.run_turn("top requests")

        assert outcome.state is RouterState.FAILED
        assert isinstance(outcome.error, ExecutionFailure)
        connector.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_deadline_bounds_review(self, make_pipeline, connector):
        async def slow_reviewer(request):
            await asyncio.sleep(1)
            return ReviewDecision.execute()

        pipeline = make_pipeline(review_handler=slow_reviewer)

        outcome = await pipeline.run_turn("top requests", deadline=Deadline(0.05))

        assert outcome.state is RouterState.FAILED
        assert isinstance(outcome.error, DeadlineExceeded)
        assert outcome.error.stage == "review"
        connector.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_deadline_passed_to_connector(self, make_pipeline, connector):
        pipeline = make_pipeline(mode="auto", query_timeout=15.0)
        deadline = Deadline(30.0)

        await pipeline.run_turn("top requests", deadline=deadline)

        assert connector.execute.call_args.kwargs == {"timeout": 15.0, "deadline": deadline}
