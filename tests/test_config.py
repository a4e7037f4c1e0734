import pytest

from sitecrawler.exceptions import ConfigError
from sitecrawler.utils.config import Config, ConfigManager, CrawlParams, FetcherConfig, get_config, load_config


def test_crawl_params_defaults():
    params = CrawlParams(url="http://x/")
    assert params.interval == 500
    assert params.connections == 1
    assert params.retry_count == 5
    assert params.ignore_trailing_slash and params.ignore_query_params and params.ignore_hash
    assert params.base_timeout == 5000
    assert params.backoff_unit == 1000


@pytest.mark.parametrize("options", [
    {'url': ''},
    {'url': "http://x/", 'connections': 0},
    {'url': "http://x/", 'retry_count': -1},
    {'url': "http://x/", 'interval': -5},
    {'url': "http://x/", 'base_timeout': -1},
])
def test_crawl_params_validation(options):
    with pytest.raises(ConfigError):
        CrawlParams(**options)


def test_crawl_params_are_immutable():
    params = CrawlParams(url="http://x/")
    with pytest.raises(AttributeError):
        params.url = "http://y/"


def test_from_dict_accepts_camel_case_keys():
    params = CrawlParams.from_dict({
        'url': "http://x/",
        'retryCount': 2,
        'ignoreTrailingSlash': False,
        'ignoreQueryParams': False,
        'ignoreHash': False,
        'connections': 3,
    })
    assert params.retry_count == 2
    assert params.connections == 3
    assert not (params.ignore_trailing_slash or params.ignore_query_params or params.ignore_hash)


def test_from_dict_rejects_unknown_options():
    with pytest.raises(ConfigError, match="maxDepth"):
        CrawlParams.from_dict({'url': "http://x/", 'maxDepth': 3})


def test_from_dict_requires_url():
    with pytest.raises(ConfigError):
        CrawlParams.from_dict({'interval': 10})


def test_crawl_params_overrides_win_and_none_is_ignored():
    config = Config(crawl={'interval': 100, 'connections': 2})
    params = config.crawl_params(url="http://x/", connections=5, interval=None, retryCount=1)
    assert params.interval == 100
    assert params.connections == 5
    assert params.retry_count == 1


def test_load_config_from_yaml(tmp_path):
    path = tmp_path / "crawler.yaml"
    path.write_text(
        "crawl:\n"
        "  url: http://x/docs/\n"
        "  retryCount: 3\n"
        "fetcher:\n"
        "  backend: http\n"
        "  user_agent: test-agent\n"
        "logging:\n"
        "  level: debug\n"
    )

    config = load_config(str(path))

    assert get_config() is config
    assert config.fetcher == FetcherConfig(backend='http', user_agent='test-agent')
    assert config.logging.level == 'debug'
    assert config.monitoring.metrics_enabled is False
    params = config.crawl_params()
    assert params.url == "http://x/docs/"
    assert params.retry_count == 3


def test_empty_yaml_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")

    config = ConfigManager(str(path)).load_config()

    assert config.crawl == {}
    assert config.fetcher.backend == 'browser'


@pytest.mark.parametrize("content", [
    "fetcher:\n  backend: telnet\n",
    "logging:\n  level: LOUD\n",
    "monitoring:\n  prometheus_port: 70000\n",
    "fetcher:\n  proxy: http://p/\n",
    "crawl: [1, 2]\n",
    "- just\n- a list\n",
    "crawl: {url: [unclosed\n",
])
def test_invalid_files_raise_config_error(tmp_path, content):
    path = tmp_path / "bad.yaml"
    path.write_text(content)
    with pytest.raises(ConfigError):
        load_config(str(path))


def test_missing_file_raises_config_error(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(str(tmp_path / "nope.yaml"))


def test_manager_requires_loading_first():
    with pytest.raises(ConfigError):
        ConfigManager("unused.yaml").config
