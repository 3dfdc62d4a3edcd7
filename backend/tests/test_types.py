# tests/test_types.py
# 审批 token 状态机与运行状态测试

from datetime import datetime, timedelta, timezone

import pytest

from memeflow.workflows.types import (
    CorrelationToken,
    RunState,
    RunStatus,
    TokenAlreadySettled,
    TokenState,
    WorkflowResult,
    is_valid_variant,
    workflow_id_from_token,
)


CREATED_AT = datetime(2026, 1, 15, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def token():
    return CorrelationToken.issue(
        workflow_id="meme-1234",
        nonce="abcdef",
        created_at=CREATED_AT,
        timeout_seconds=600,
    )


class TestCorrelationToken:
    """一次性审批 token"""

    def test_issue(self, token):
        assert token.id == "meme-1234.abcdef"
        assert token.state == TokenState.PENDING
        assert token.is_pending
        assert token.deadline == CREATED_AT + timedelta(minutes=10)

    def test_resolve_once(self, token):
        token.resolve(2, now=CREATED_AT + timedelta(minutes=1))

        assert token.state == TokenState.RESOLVED
        assert token.chosen_variant == 2
        assert not token.is_pending

    def test_second_resolution_rejected(self, token):
        token.resolve(1)

        with pytest.raises(TokenAlreadySettled) as exc_info:
            token.resolve(2)

        assert exc_info.value.state == TokenState.RESOLVED
        # 第一次的结果不变
        assert token.chosen_variant == 1

    def test_invalid_variant_still_consumes_token(self, token):
        token.resolve(3)

        assert token.state == TokenState.RESOLVED
        with pytest.raises(TokenAlreadySettled):
            token.resolve(1)

    def test_resolution_after_deadline_rejected(self, token):
        with pytest.raises(TokenAlreadySettled) as exc_info:
            token.resolve(1, now=token.deadline)

        assert exc_info.value.state == TokenState.EXPIRED
        assert token.is_pending

    def test_expire(self, token):
        token.expire()

        assert token.state == TokenState.EXPIRED
        with pytest.raises(TokenAlreadySettled):
            token.resolve(1)

    def test_expire_after_resolve_rejected(self, token):
        token.resolve(1)

        with pytest.raises(TokenAlreadySettled):
            token.expire()

    def test_to_dict(self, token):
        data = token.to_dict()

        assert data["id"] == token.id
        assert data["state"] == "pending"
        assert data["chosen_variant"] is None
        assert data["deadline"] == "2026-01-15T09:10:00+00:00"


class TestTokenHelpers:

    def test_workflow_id_from_token(self):
        assert workflow_id_from_token("meme-1234.abcdef") == "meme-1234"

    def test_workflow_id_with_dots(self):
        assert workflow_id_from_token("meme.v2.run.abcdef") == "meme.v2.run"

    @pytest.mark.parametrize("token_id", ["", "no-separator", ".abcdef", "meme-1234."])
    def test_malformed_token(self, token_id):
        with pytest.raises(ValueError):
            workflow_id_from_token(token_id)

    @pytest.mark.parametrize("variant,expected", [
        (1, True),
        (2, True),
        (0, False),
        (3, False),
        (None, False),
    ])
    def test_is_valid_variant(self, variant, expected):
        assert is_valid_variant(variant) is expected


class TestRunStatus:
    """状态查询结果的对外格式"""

    def test_pending(self):
        status = RunStatus(state=RunState.PENDING, phase="awaiting_approval")

        assert not status.is_terminal
        assert status.to_response() == {"status": "pending", "phase": "awaiting_approval"}

    def test_complete(self):
        status = RunStatus(
            state=RunState.COMPLETE,
            result=WorkflowResult(
                variant1_reference="https://utfs.io/f/one.png",
                variant2_reference="https://utfs.io/f/two.png",
                selected_variant=2,
            ),
        )

        assert status.is_terminal
        assert status.to_response() == {
            "status": "complete",
            "variant1Reference": "https://utfs.io/f/one.png",
            "variant2Reference": "https://utfs.io/f/two.png",
            "selectedVariant": 2,
            "approved": True,
        }

    def test_error_never_contains_result(self):
        status = RunStatus(
            state=RunState.ERROR,
            error="Approval not received within 600 seconds",
            error_type="ApprovalTimeout",
        )

        response = status.to_response()
        assert response == {
            "status": "error",
            "error": "Approval not received within 600 seconds",
            "errorType": "ApprovalTimeout",
        }
        assert "selectedVariant" not in response

    def test_error_without_message(self):
        assert RunStatus(state=RunState.ERROR).to_response() == {
            "status": "error",
            "error": "Unknown error",
        }

    def test_from_response(self):
        original = RunStatus(
            state=RunState.COMPLETE,
            result=WorkflowResult("https://a", "https://b", 1),
        )

        restored = RunStatus.from_response(original.to_response())

        assert restored == original
