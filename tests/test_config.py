import pytest

from graphsync.config import CacheOptions, LoaderConfig, load_config
from graphsync.errors import ConfigError


def test_loader_config_defaults():
    config = LoaderConfig(url="/api/graph")
    assert config.method == "GET"
    assert config.poll_interval == 0
    assert config.expand_on_node_click is False
    assert config.cache_options == CacheOptions()
    assert config.resolve_headers() == {}
    assert config.filter_params(None) == {}


def test_method_is_normalised():
    assert LoaderConfig(url="/api/graph", method="post").method == "POST"
    with pytest.raises(ConfigError):
        LoaderConfig(url="/api/graph", method="DELETE")


@pytest.mark.parametrize(
    "kwargs",
    [
        {"url": ""},
        {"url": "/api/graph", "poll_interval": -1},
        {"url": "/api/graph", "cache_options": {"max_age": -5}},
        {"url": "/api/graph", "cache_options": {"ttl": 10}},
    ],
)
def test_invalid_loader_config(kwargs):
    with pytest.raises(ConfigError):
        LoaderConfig(**kwargs)


def test_cache_options_from_mapping():
    config = LoaderConfig(url="/api/graph", cache_options={"max_nodes": 10, "node_id_field": "uid"})
    assert config.cache_options.max_nodes == 10
    assert config.cache_options.node_id_field == "uid"
    with pytest.raises(ConfigError):
        CacheOptions(node_id_field="")


def test_from_dict_attaches_hooks():
    seen = []
    config = LoaderConfig.from_dict(
        {"url": "/api/graph", "filters": {"type": "a"}, "cache_options": {"max_age": 1000}},
        on_load_error=seen.append,
    )
    assert config.on_load_error is not None
    assert config.cache_options.max_age == 1000
    with pytest.raises(ConfigError):
        LoaderConfig.from_dict({"url": "/api/graph", "bogus": True})


def test_load_config_reads_yaml(tmp_path):
    path = tmp_path / "graphsync.yml"
    path.write_text(
        "loader:\n"
        "  url: https://example.org/api/graph\n"
        "  method: POST\n"
        "  poll_interval: 30000\n"
        "  filters:\n"
        "    type: person\n"
        "  cache_options:\n"
        "    max_nodes: 500\n"
        "output_dir: out\n",
        encoding="utf-8",
    )
    config = load_config(path)
    assert config["loader"]["filters"] == {"type": "person"}
    assert config["loader"]["cache_options"]["max_nodes"] == 500
    assert LoaderConfig.from_dict(config["loader"]).poll_interval == 30000


@pytest.mark.parametrize(
    "text",
    [
        "output_dir: out\n",
        "loader:\n  url: /api\n  method: PATCH\n",
        "loader:\n  url: /api\n  poll_interval: -10\n",
        "loader:\n  url: /api\n  unknown: 1\n",
        "loader:\n  url: /api\n  cache_options:\n    ttl: 5\n",
        "loader: [unclosed\n",
    ],
)
def test_load_config_rejects_invalid_documents(tmp_path, text):
    path = tmp_path / "bad.yml"
    path.write_text(text, encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(path)


def test_load_config_missing_file(tmp_path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "missing.yml")
