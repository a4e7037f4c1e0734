import json

import pytest

from conftest import FakeCapability, page

import main
from sitecrawler.crawler.scheduler import crawl


@pytest.fixture
def fake_crawl(monkeypatch):
    """Route the CLI's crawl() through an in-memory capability."""
    capabilities = []

    def install(capability):
        async def _crawl(params, fetcher=None, **kwargs):
            kwargs['handle_signals'] = False
            return await crawl(params, capability, **kwargs)
        monkeypatch.setattr(main, 'crawl', _crawl)
        capabilities.append(capability)
        return capability

    return install


SITE = {
    "http://x/": page(title="Home", description="Hello, world", links=["http://x/a"]),
    "http://x/a": page(title="A"),
}


def test_parser_defaults_leave_config_in_charge():
    args = main.build_parser().parse_args(["http://x/", "-o", "out.csv"])
    assert args.interval is None
    assert args.retry is None
    assert args.ignore_hash is None
    assert args.format is None


def test_parser_keep_flags_disable_normalization():
    args = main.build_parser().parse_args(
        ["http://x/", "-o", "out.csv", "--keep-hash", "--keep-query-params", "-c", "4"]
    )
    params = main.CrawlerApp().crawl_params(main.Config(), args)
    assert params.ignore_hash is False
    assert params.ignore_query_params is False
    assert params.ignore_trailing_slash is True
    assert params.connections == 4


def test_out_is_required(capsys):
    with pytest.raises(SystemExit):
        main.build_parser().parse_args(["http://x/"])


def test_cli_writes_csv_and_exits_zero(tmp_path, fake_crawl):
    fake_crawl(FakeCapability(SITE))
    out = tmp_path / "pages.csv"

    assert main.main(["http://x/", "-i", "0", "-o", str(out)]) == 0

    lines = out.read_text(encoding='utf-8').splitlines()
    assert lines[0] == "url,title,description"
    assert sorted(lines[1:]) == ["http://x/,Home,Hello\\, world", "http://x/a,A,"]


def test_cli_writes_json_lines_by_suffix(tmp_path, fake_crawl):
    fake_crawl(FakeCapability(SITE))
    out = tmp_path / "pages.jsonl"

    assert main.main(["http://x/", "-i", "0", "-o", str(out)]) == 0

    records = [json.loads(line) for line in out.read_text(encoding='utf-8').splitlines()]
    assert {record['url'] for record in records} == {"http://x/", "http://x/a"}


def test_cli_reads_yaml_config(tmp_path, fake_crawl):
    capability = fake_crawl(FakeCapability(SITE, failing=["http://x/a"]))
    config = tmp_path / "crawler.yaml"
    config.write_text("crawl:\n  interval: 0\n  retry_count: 2\n  base_timeout: 100\n")
    out = tmp_path / "pages.csv"

    assert main.main(["http://x/", "--config", str(config), "-o", str(out)]) == 0
    assert capability.visits("http://x/a") == 2


def test_cli_returns_one_when_capability_fails(tmp_path, fake_crawl):
    fake_crawl(FakeCapability(SITE, fail_start=True))
    assert main.main(["http://x/", "-o", str(tmp_path / "pages.csv")]) == 1


def test_cli_returns_one_on_worker_error(tmp_path, fake_crawl):
    fake_crawl(FakeCapability(SITE, crashing=["http://x/a"]))
    assert main.main(["http://x/", "-i", "0", "-o", str(tmp_path / "pages.csv")]) == 1


def test_cli_reports_bad_config(tmp_path, capsys):
    config = tmp_path / "bad.yaml"
    config.write_text("crawl:\n  depth: 3\n")

    assert main.main(["http://x/", "--config", str(config), "-o", str(tmp_path / "o.csv")]) == 1
    assert "Unknown crawl option" in capsys.readouterr().err
