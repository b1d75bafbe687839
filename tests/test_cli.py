from typer.testing import CliRunner

from blog_archive_scraper import cli
from blog_archive_scraper.cli import app
from blog_archive_scraper.codec import RecordSetCodec
from blog_archive_scraper.pipeline import open_store
from blog_archive_scraper.types import ArticleRecord, DiscoveredUrl


runner = CliRunner()


def _seed_store(cfg) -> None:
    records = [
        ArticleRecord(source_url="https://example.com/a", title="Alpha", body="a", published_at="2024-02-01"),
        ArticleRecord(source_url="https://example.com/b", title="Beta", body="b", published_at="2024-01-01"),
    ]
    open_store(cfg).put("articles/records", RecordSetCodec().encode(records), cfg.document_limit_bytes)


def test_delete_then_export(fast_config, tmp_path):
    cfg = fast_config()
    _seed_store(cfg)
    config = str(tmp_path / "config.yaml")

    result = runner.invoke(app, ["delete", "https://example.com/b", "--config", config])
    assert result.exit_code == 0
    assert "Marked as deleted" in result.output

    out = tmp_path / "export.csv"
    result = runner.invoke(app, ["export", "--output", str(out), "--config", config])
    assert result.exit_code == 0
    text = out.read_text(encoding="utf-8")
    assert "Alpha" in text and "Beta" not in text


def test_show_lists_records(fast_config, tmp_path):
    cfg = fast_config()
    _seed_store(cfg)
    result = runner.invoke(app, ["show", "--config", str(tmp_path / "config.yaml")])
    assert result.exit_code == 0
    assert "Alpha" in result.output


def test_delete_rejects_garbage(fast_config, tmp_path):
    fast_config()
    result = runner.invoke(app, ["delete", "garbage", "--config", str(tmp_path / "config.yaml")])
    assert result.exit_code == 2


def test_discover_lists_titles(fast_config, tmp_path, monkeypatch):
    fast_config()
    seen = {}

    async def fake_preview(config_path, seed, max_items, *, force_refresh, fetch_titles):
        seen.update(seed=seed, max_items=max_items, fetch_titles=fetch_titles)
        return [DiscoveredUrl("https://example.com/posts/a", "2024-03-01T00:00:00+00:00", "Alpha", "sitemap")]

    monkeypatch.setattr(cli, "run_preview", fake_preview)
    result = runner.invoke(
        app, ["discover", "https://example.com", "-n", "5", "--no-fetch", "--config", str(tmp_path / "config.yaml")]
    )

    assert result.exit_code == 0
    assert "Alpha" in result.output
    assert "2024-03-01" in result.output
    assert seen == {"seed": "https://example.com", "max_items": 5, "fetch_titles": False}
