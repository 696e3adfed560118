"""Unit tests for the in-process lens action runner.

This module tests handler registration, dispatch, and normalization of
handler return values.
"""

from unittest.mock import AsyncMock

import pytest

from lenschain.contracts.action_io import ActionContext, ActionResult, ActionRunner
from lenschain.runtime.actions import LensActionRunner


@pytest.fixture
def runner():
    """Create an empty LensActionRunner."""
    return LensActionRunner()


@pytest.fixture
def context():
    """Create a sample ActionContext."""
    return ActionContext(pipeline_id="p", execution_id="e1", step_order=1)


class TestRegistration:
    """Test registering handlers."""

    def test_satisfies_protocol(self, runner):
        """Test that the runner is an ActionRunner."""
        assert isinstance(runner, ActionRunner)

    def test_register(self, runner):
        """Test registering and listing handlers."""

        async def handler(inputs, context):
            return {}

        runner.register("healthcare", "build-care-plan", handler)

        assert runner.get_handler("healthcare", "build-care-plan") is handler
        assert runner.list_actions() == ["healthcare.build-care-plan"]

    def test_decorator(self, runner):
        """Test the decorator form."""

        @runner.action("food", "generate-meal-plan")
        async def meal_plan(inputs, context):
            return {}

        assert runner.get_handler("food", "generate-meal-plan") is meal_plan

    def test_non_callable_rejected(self, runner):
        """Test that non-callable handlers are rejected."""
        with pytest.raises(ValueError) as exc_info:
            runner.register("law", "draft", "not a handler")
        assert "law.draft" in str(exc_info.value)

    def test_async_mock_accepted(self, runner):
        """Test that AsyncMock handlers are accepted."""
        runner.register("law", "draft", AsyncMock(return_value={}))
        assert runner.get_handler("law", "draft") is not None

    def test_replace_handler(self, runner):
        """Test that registering again replaces the handler."""
        first = AsyncMock()
        second = AsyncMock()
        runner.register("law", "draft", first)
        runner.register("law", "draft", second)

        assert runner.get_handler("law", "draft") is second
        assert runner.list_actions() == ["law.draft"]


class TestInvoke:
    """Test invoking actions."""

    @pytest.mark.asyncio
    async def test_invoke_passes_inputs_and_context(self, runner, context):
        """Test that the handler receives the inputs and context."""
        handler = AsyncMock(return_value={"ok": True, "dtuId": "d1", "artifact": {"a": 1}})
        runner.register("law", "draft", handler)

        result = await runner.invoke("law", "draft", {"businessType": "llc"}, context)

        handler.assert_awaited_once_with({"businessType": "llc"}, context)
        assert isinstance(result, ActionResult)
        assert result.dtu_id == "d1"
        assert result.artifact == {"a": 1}

    @pytest.mark.asyncio
    async def test_invoke_unknown_action(self, runner, context):
        """Test that unknown actions yield a failed result."""
        result = await runner.invoke("law", "missing", {}, context)

        assert result.ok is False
        assert result.error == "Unknown lens action: law.missing"

    @pytest.mark.asyncio
    async def test_invoke_plain_value(self, runner, context):
        """Test that plain return values become the artifact."""
        runner.register("law", "draft", AsyncMock(return_value="document text"))

        result = await runner.invoke("law", "draft", {}, context)

        assert result.ok is True
        assert result.artifact == "document text"

    @pytest.mark.asyncio
    async def test_invoke_sync_handler(self, runner, context):
        """Test that plain callables are supported."""

        def handler(inputs, context):
            return {"ok": False, "error": "not eligible"}

        runner.register("insurance", "check-coverage", handler)

        result = await runner.invoke("insurance", "check-coverage", {}, context)

        assert result.ok is False
        assert result.error == "not eligible"

    @pytest.mark.asyncio
    async def test_invoke_propagates_exceptions(self, runner, context):
        """Test that handler exceptions reach the caller."""
        runner.register("law", "draft", AsyncMock(side_effect=RuntimeError("lens down")))

        with pytest.raises(RuntimeError, match="lens down"):
            await runner.invoke("law", "draft", {}, context)
