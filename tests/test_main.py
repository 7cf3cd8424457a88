"""Tests for the command line entry point."""
import argparse
from unittest.mock import patch

import pytest

import main
from fakes import PNG_BYTES, FakeSearch, findings_payload, make_llm, text_turn
from mentor.agents.orchestrator import AnalysisOrchestrator
from mentor.agents.strategies import ProviderCapabilities


def cli_args(image, strategy=None, as_json=False):
    return argparse.Namespace(
        image=str(image),
        prompt="improve my build",
        game="Warframe",
        strategy=strategy,
        json=as_json,
    )


def fake_orchestrator(responses=None):
    llm, _ = make_llm(responses or [])
    return AnalysisOrchestrator(llm, capabilities=ProviderCapabilities(local_tools=False), search=FakeSearch())


@pytest.mark.asyncio
async def test_missing_image_is_reported_not_raised(tmp_path, capsys):
    code = await main.run_analysis(cli_args(tmp_path / "missing.png"))

    assert code == 1
    assert "Cannot read image" in capsys.readouterr().err


@pytest.mark.asyncio
async def test_unknown_strategy_is_reported_not_raised(tmp_path, capsys):
    image = tmp_path / "shot.png"
    image.write_bytes(PNG_BYTES)

    with patch("main.build_orchestrator", return_value=fake_orchestrator()):
        code = await main.run_analysis(cli_args(image, strategy="telepathy"))

    assert code == 1
    assert "Unsupported ANALYSIS_STRATEGY 'telepathy'" in capsys.readouterr().err


@pytest.mark.asyncio
async def test_prints_recommendation_as_json(tmp_path, capsys):
    image = tmp_path / "shot.png"
    image.write_bytes(PNG_BYTES)
    turn = text_turn(f"<findings>{findings_payload(summary='cli')}</findings>")

    with patch("main.build_orchestrator", return_value=fake_orchestrator([turn])):
        code = await main.run_analysis(cli_args(image, as_json=True))

    out = capsys.readouterr().out
    assert code == 0
    assert '"summary": "cli"' in out
    assert '"providerUsed": "test-provider"' in out
