"""Unit tests for the click CLI."""

import json
from unittest.mock import AsyncMock, patch

from click.testing import CliRunner

from studygen import __version__
from studygen.cli.main import cli
from studygen.core.exceptions import PollingTimeoutError
from studygen.core.models import QueueCounts, StudySet


class FakeClient:
    def __init__(self, *args, **kwargs):
        self.args = args
        self.kwargs = kwargs

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return None


def test_version():
    result = CliRunner().invoke(cli, ["version"])
    assert result.output.strip() == f"studygen v{__version__}"


def test_generate_prints_cards_and_quiz(make_study_set_dict):
    study_set = StudySet.model_validate(make_study_set_dict(cards=2, questions=1))
    FakeClient.generate = AsyncMock(return_value=study_set)

    with patch("studygen.cli.main.StudyGenClient", FakeClient):
        result = CliRunner().invoke(
            cli, ["generate", "--topic", "Photosynthesis", "--user-id", "u1"]
        )

    assert result.exit_code == 0
    assert "Flashcards (2):" in result.output
    assert "[medium] Question 0 about Photosynthesis?" in result.output
    assert "     * A" in result.output
    FakeClient.generate.assert_awaited_once_with(
        "Photosynthesis", max_attempts=60, interval=2.0
    )


def test_generate_json(make_study_set_dict):
    FakeClient.generate = AsyncMock(
        return_value=StudySet.model_validate(make_study_set_dict())
    )

    with patch("studygen.cli.main.StudyGenClient", FakeClient):
        result = CliRunner().invoke(cli, ["generate", "-t", "Photosynthesis", "--json"])

    assert json.loads(result.output)["topic"] == "Photosynthesis"


def test_generate_timeout_exits_nonzero():
    FakeClient.generate = AsyncMock(side_effect=PollingTimeoutError("gave up"))

    with patch("studygen.cli.main.StudyGenClient", FakeClient):
        result = CliRunner().invoke(cli, ["generate", "-t", "Photosynthesis"])

    assert result.exit_code == 1
    assert "Error: gave up" in result.output


def test_queue_status():
    FakeClient.get_queue_status = AsyncMock(
        return_value=QueueCounts(active=1, waiting=4)
    )

    with patch("studygen.cli.main.StudyGenClient", FakeClient):
        result = CliRunner().invoke(cli, ["queue-status"])

    assert "   waiting: 4" in result.output
