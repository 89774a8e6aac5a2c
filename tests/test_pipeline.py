"""Tests for the pass orchestrator and the CLI."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from trendpulse import cli
from trendpulse.core.config import PipelineConfig
from trendpulse.scoring.heat import HeatPassResult
from trendpulse.trends.cluster import ClusterMember, ContentCluster
from trendpulse.trends.embeddings import EmbeddingPassResult
from trendpulse.trends.pipeline import (
    TrendPassResult,
    run_embedding_pass,
    run_heat_scoring,
    run_trend_detection
)
from trendpulse.trends.spike import SaveResult


@pytest.fixture
def session_factory(session):
    factory = MagicMock()
    factory.return_value.__aenter__ = AsyncMock(return_value=session)
    factory.return_value.__aexit__ = AsyncMock(return_value=False)
    with patch('trendpulse.trends.pipeline.AsyncSessionLocal', new=factory):
        yield factory


@pytest.fixture
def pipeline_config():
    with patch('trendpulse.trends.pipeline.load_pipeline_config',
               new=AsyncMock(return_value=PipelineConfig())) as mock_load:
        yield mock_load


def two_source_cluster():
    cluster = ContentCluster(topic="Sequel announced")
    cluster.add(ClusterMember(id="1", title="Sequel announced", source="rss:variety"))
    cluster.add(ClusterMember(id="2", title="Studio confirms sequel", source="reddit_movies"))
    return cluster


@pytest.mark.asyncio
async def test_heat_pass_loads_config_once(session, session_factory, pipeline_config):
    expected = HeatPassResult(processed=4)

    with patch('trendpulse.trends.pipeline.compute_all_heat_scores',
               new=AsyncMock(return_value=expected)) as mock_compute:
        result = await run_heat_scoring()

    assert result is expected
    pipeline_config.assert_awaited_once_with(session)
    mock_compute.assert_awaited_once_with(session, PipelineConfig(), now=None)


@pytest.mark.asyncio
async def test_trend_pass_detects_and_saves(session, session_factory, pipeline_config):
    with patch('trendpulse.trends.pipeline.cluster_recent_content',
               new=AsyncMock(return_value=[two_source_cluster()])), \
         patch('trendpulse.trends.pipeline.save_trends',
               new=AsyncMock(return_value=SaveResult(saved=1))) as mock_save:

        result = await run_trend_detection()

    assert result.clusters == 1
    assert len(result.trends) == 1
    assert result.trends[0].sources == ["rss:variety", "reddit"]
    assert result.saved == 1
    assert result.fatal is False
    mock_save.assert_awaited_once()


@pytest.mark.asyncio
async def test_trend_pass_fatal_when_clustering_fails(session, session_factory, pipeline_config):
    with patch('trendpulse.trends.pipeline.cluster_recent_content',
               new=AsyncMock(side_effect=Exception("db down"))), \
         patch('trendpulse.trends.pipeline.save_trends', new=AsyncMock()) as mock_save:

        result = await run_trend_detection()

    assert result.fatal is True
    assert result.errors == ["Clustering failed: db down"]
    mock_save.assert_not_awaited()


@pytest.mark.asyncio
async def test_trend_pass_without_clusters_saves_nothing(session, session_factory, pipeline_config):
    with patch('trendpulse.trends.pipeline.cluster_recent_content', new=AsyncMock(return_value=[])), \
         patch('trendpulse.trends.pipeline.save_trends', new=AsyncMock()) as mock_save:

        result = await run_trend_detection()

    assert result.to_dict()['trends'] == []
    mock_save.assert_not_awaited()


@pytest.mark.asyncio
async def test_embedding_pass_keeps_caller_provider_open(session, session_factory, pipeline_config):
    provider = MagicMock()
    provider.aclose = AsyncMock()

    with patch('trendpulse.trends.pipeline.embed_unprocessed_content',
               new=AsyncMock(return_value=EmbeddingPassResult(processed=2))) as mock_embed:
        result = await run_embedding_pass(provider)

    assert result.processed == 2
    mock_embed.assert_awaited_once_with(session, provider, PipelineConfig().embeddings)
    provider.aclose.assert_not_awaited()


@pytest.mark.asyncio
async def test_embedding_pass_closes_own_provider(session, session_factory, pipeline_config):
    provider = MagicMock()
    provider.aclose = AsyncMock()

    with patch('trendpulse.trends.pipeline.create_embedding_provider', return_value=provider), \
         patch('trendpulse.trends.pipeline.embed_unprocessed_content',
               new=AsyncMock(return_value=EmbeddingPassResult())):
        await run_embedding_pass()

    provider.aclose.assert_awaited_once()


@pytest.mark.asyncio
async def test_embedding_pass_fatal_without_provider():
    with patch('trendpulse.trends.pipeline.create_embedding_provider',
               side_effect=Exception("Embedding API key not configured")):
        result = await run_embedding_pass()

    assert result.fatal is True
    assert "Embedding API key not configured" in result.errors[0]


# ==========================================
# CLI
# ==========================================

def test_cli_exit_code_follows_fatal(capsys):
    with patch('trendpulse.cli.setup_logging'), \
         patch('trendpulse.cli.run_heat_scoring', new=AsyncMock(return_value=HeatPassResult(processed=2))):
        assert cli.main(['heat']) == 0

    with patch('trendpulse.cli.setup_logging'), \
         patch('trendpulse.cli.run_heat_scoring',
               new=AsyncMock(return_value=HeatPassResult(errors=["Failed to fetch content: x"], fatal=True))):
        assert cli.main(['heat']) == 1

    out = capsys.readouterr().out
    assert '"pass": "heat"' in out


def test_cli_verbose_sets_debug_level():
    with patch('trendpulse.cli.setup_logging') as mock_setup, \
         patch('trendpulse.cli.run_trend_detection', new=AsyncMock(return_value=TrendPassResult())):
        assert cli.main(['trends', '--verbose']) == 0

    mock_setup.assert_called_once_with("trendpulse-trends", level="DEBUG")


def test_cli_rejects_unknown_pass():
    with pytest.raises(SystemExit):
        cli.main(['publish'])
