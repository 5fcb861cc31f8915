"""Tests for SelfHealer — one recovery attempt per failed stage."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from legacy_bridge.errors import ErrorKind
from legacy_bridge.pipeline.healing import SelfHealer, failure_kind, partial_input, simplify_input
from legacy_bridge.pipeline.models import StageContext, StageResult

BIG_CODE = "".join(f"       MOVE {i} TO WS-COUNT.\n" for i in range(40))


@pytest.fixture
def stage() -> MagicMock:
    s = MagicMock()
    s.execute = AsyncMock(return_value=StageResult.ok({"done": True}, 0.9))
    return s


@pytest.fixture
def healer() -> SelfHealer:
    return SelfHealer(chunk_max_chars=200)


def _failed(error: str, kind: ErrorKind | None = None) -> StageResult:
    return StageResult.failed(error, kind)


def test_failure_kind_prefers_explicit_tag():
    assert failure_kind(_failed("rate limit", ErrorKind.FORMAT)) is ErrorKind.FORMAT
    assert failure_kind(_failed("rate limit")) is ErrorKind.TRANSIENT


def test_simplify_input():
    simplified = simplify_input(
        {"analysis_result": {}, "target_framework": "Spring", "modernization_style": "aggressive"}
    )
    assert simplified["target_framework"] is None
    assert simplified["modernization_style"] == "conservative"
    assert simplified["simplified"] is True
    assert "analysis_type" not in simplified


def test_partial_input():
    assert partial_input({"code": "tiny"}, max_chars=200) is None
    assert partial_input({"data": {}}, max_chars=200) is None

    narrowed = partial_input({"code": BIG_CODE, "file_name": "X.cbl"}, max_chars=200)
    assert narrowed["partial"] is True
    assert narrowed["file_name"] == "X.cbl"
    assert len(narrowed["chunks"]) > 1
    assert narrowed["code"] == narrowed["chunks"][0]["content"]


async def test_transient_retries_same_input(healer, stage, context: StageContext):
    stage_input = {"code": "x"}
    result = await healer.heal("analyze", stage, stage_input, _failed("timeout"), context)

    assert result.success is True
    assert result.healed is True
    args = stage.execute.call_args.args
    assert args[0] == stage_input
    assert args[1].attempt == context.attempt + 1
    assert args[1].healing is True
    assert context.healing is False


async def test_unknown_treated_as_transient(healer, stage, context):
    await healer.heal("analyze", stage, {"code": "x"}, _failed("weird"), context)
    assert stage.execute.call_args.args[0] == {"code": "x"}


async def test_too_complex_processes_first_chunk(healer, stage, context):
    result = await healer.heal(
        "analyze", stage, {"code": BIG_CODE}, _failed("program too complex"), context
    )
    assert result.success is True
    narrowed = stage.execute.call_args.args[0]
    assert narrowed["partial"] is True
    assert len(narrowed["code"]) <= 200


async def test_too_complex_unsplittable_returns_original_failure(healer, stage, context):
    failed = _failed("program too complex")
    result = await healer.heal("analyze", stage, {"code": "tiny"}, failed, context)

    assert result is failed
    stage.execute.assert_not_called()


async def test_format_retries_with_simplified_input(healer, stage, context):
    stage_input = {"analysis_result": {"a": 1}, "target_framework": "Spring"}
    await healer.heal("transform", stage, stage_input, _failed("bad format"), context)

    retried = stage.execute.call_args.args[0]
    assert retried["target_framework"] is None
    assert retried["simplified"] is True


async def test_input_errors_are_not_healed(healer, stage, context):
    failed = _failed("Required field 'code' is missing", ErrorKind.INPUT)
    assert await healer.heal("analyze", stage, {}, failed, context) is failed
    stage.execute.assert_not_called()


async def test_failed_retry_is_returned(healer, stage, context):
    stage.execute.return_value = StageResult.failed("still a timeout")
    result = await healer.heal("analyze", stage, {"code": "x"}, _failed("timeout"), context)
    assert result.success is False
    assert result.healed is False
    assert result.error == "still a timeout"


async def test_raising_stage_returns_original_failure(healer, stage, context):
    stage.execute.side_effect = RuntimeError("crash")
    failed = _failed("timeout")
    assert await healer.heal("analyze", stage, {"code": "x"}, failed, context) is failed
