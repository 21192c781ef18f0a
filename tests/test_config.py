"""
Tests for configuration models and file loading.
"""

import json

import pytest

from fsconsul.config.loader import apply_env_defaults, load_config, read_config_file, substitute_env_vars
from fsconsul.config.models import (
    DEFAULT_ADDRESS,
    DEFAULT_WAIT_TIME,
    Mapping,
    StoreConnection,
    WatchConfig,
    normalize_prefix,
    normalize_target_directory,
    parse_config,
)
from fsconsul.core.retry import RetryPolicy
from fsconsul.exceptions import ConfigError


@pytest.fixture(autouse=True)
def clean_consul_env(monkeypatch):
    monkeypatch.delenv("CONSUL_HTTP_ADDR", raising=False)
    monkeypatch.delenv("CONSUL_HTTP_TOKEN", raising=False)


class TestNormalization:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("/tmp/tests", "/tmp/tests/"),
            ("/tmp/tests/", "/tmp/tests/"),
            ("/tmp/tests///", "/tmp/tests/"),
            ('/tmp/tests"', "/tmp/tests/"),
            ("/tmp/tests/'", "/tmp/tests/"),
            ("relative/dir", "relative/dir/"),
            ("/", "/"),
        ],
    )
    def test_target_directory(self, raw, expected):
        assert normalize_target_directory(raw) == expected

    @pytest.mark.parametrize("raw", ["/tmp/tests", '/tmp/tests"', "/tmp/x//", "/"])
    def test_target_directory_idempotent(self, raw):
        once = normalize_target_directory(raw)
        assert normalize_target_directory(once) == once

    def test_only_one_trailing_quote_is_stripped(self):
        assert normalize_target_directory('/tmp/tests""') == '/tmp/tests"/'

    def test_empty_target_directory(self):
        assert normalize_target_directory("") == ""
        assert normalize_target_directory('"') == ""

    @pytest.mark.parametrize("raw, expected", [("app", "app"), ("/app/", "app"), ("a/b/", "a/b")])
    def test_prefix(self, raw, expected):
        assert normalize_prefix(raw) == expected


class TestMapping:
    def test_normalizes_on_construction(self):
        mapping = Mapping(source_prefix="/app/", target_directory='/srv/app"', on_change="  reload  ")
        assert mapping.source_prefix == "app"
        assert mapping.target_directory == "/srv/app/"
        assert mapping.on_change == "reload"
        assert str(mapping) == "app -> /srv/app/"

    def test_blank_on_change_is_none(self):
        assert Mapping(source_prefix="app", target_directory="/srv", on_change="   ").on_change is None

    def test_empty_prefix_rejected(self):
        with pytest.raises(ConfigError, match="prefix"):
            Mapping(source_prefix="/", target_directory="/srv")

    def test_empty_target_rejected(self):
        with pytest.raises(ConfigError, match="target directory"):
            Mapping(source_prefix="app", target_directory="")

    def test_watch_config_requires_mappings(self):
        with pytest.raises(ConfigError, match="At least one mapping"):
            WatchConfig(store=StoreConnection(), mappings=())

    @pytest.mark.parametrize("wait_time", [0, -5, 0.5, 601, float("nan"), float("inf")])
    def test_watch_config_rejects_unusable_wait(self, wait_time):
        mapping = Mapping(source_prefix="app", target_directory="/srv")
        with pytest.raises(ConfigError, match="wait_time must be between 1 and 600 seconds"):
            WatchConfig(store=StoreConnection(), mappings=(mapping,), wait_time=wait_time)

    @pytest.mark.parametrize("wait_time", [1, 600])
    def test_watch_config_wait_bounds_are_inclusive(self, wait_time):
        mapping = Mapping(source_prefix="app", target_directory="/srv")
        assert WatchConfig(store=StoreConnection(), mappings=(mapping,), wait_time=wait_time).wait_time == wait_time


class TestParseConfig:
    def test_minimal(self):
        config = parse_config({"mappings": [{"source_prefix": "app", "target_directory": "/srv/app"}]})
        assert config.store == StoreConnection(address=DEFAULT_ADDRESS)
        assert config.wait_time == DEFAULT_WAIT_TIME
        assert config.retry == RetryPolicy()
        assert config.logging == {}
        assert config.mappings == (Mapping(source_prefix="app", target_directory="/srv/app/"),)

    def test_aliases(self):
        config = parse_config(
            {
                "consul": {"addr": "consul.local:8500", "dc": "east", "token": "abc"},
                "mappings": [
                    {"sourcePrefix": "a", "targetDirectory": "/a", "onChangeCommand": "reload-a"},
                    {"prefix": "b", "path": "/b", "onchange": "reload-b"},
                ],
            }
        )
        assert config.store == StoreConnection(address="consul.local:8500", datacenter="east", auth_token="abc")
        assert [(m.source_prefix, m.target_directory, m.on_change) for m in config.mappings] == [
            ("a", "/a/", "reload-a"),
            ("b", "/b/", "reload-b"),
        ]

    def test_full(self):
        config = parse_config(
            {
                "store": {"address": "https://consul:8501", "datacenter": "dc1"},
                "mappings": [{"source_prefix": "app", "target_directory": "/srv", "on_change": "make", "on_change_cwd": "/srv"}],
                "retry": {"max_attempts": 3, "initial_delay": 0.5, "max_delay": 5},
                "wait_time": "30",
                "logging": {"level": "DEBUG"},
            }
        )
        assert config.store.base_url == "https://consul:8501"
        assert config.mappings[0].on_change_cwd == "/srv"
        assert config.retry.max_attempts == 3
        assert config.wait_time == 30.0
        assert config.logging == {"level": "DEBUG"}

    @pytest.mark.parametrize(
        "payload, message",
        [
            ([], "must be a mapping"),
            ({}, "no 'mappings'"),
            ({"mappings": {"a": "/a"}}, "must be a list"),
            ({"mappings": []}, "At least one mapping"),
            ({"mappings": ["app"]}, "Mapping #0"),
            ({"mappings": [{"prefix": "a"}]}, "target directory"),
            ({"mappings": [{"prefix": ["a"], "path": "/a"}]}, "must be a string"),
            ({"store": "localhost", "mappings": [{"prefix": "a", "path": "/a"}]}, "'store' must be a mapping"),
            ({"wait_time": "soon", "mappings": [{"prefix": "a", "path": "/a"}]}, "wait_time"),
            ({"wait_time": "nan", "mappings": [{"prefix": "a", "path": "/a"}]}, "wait_time must be between"),
            ({"wait_time": 0.5, "mappings": [{"prefix": "a", "path": "/a"}]}, "wait_time must be between"),
            ({"logging": "debug", "mappings": [{"prefix": "a", "path": "/a"}]}, "'logging'"),
            ({"retry": {"attempts": 3}, "mappings": [{"prefix": "a", "path": "/a"}]}, "Unknown retry option"),
        ],
    )
    def test_invalid(self, payload, message):
        with pytest.raises(ConfigError, match=message):
            parse_config(payload)


class TestLoader:
    def test_load_yaml(self, tmp_path):
        config_file = tmp_path / "fsconsul.yaml"
        config_file.write_text(
            """
store:
  address: consul.local:8500
mappings:
  - source_prefix: app
    target_directory: /srv/app
    on_change: systemctl reload app
"""
        )
        config = load_config(config_file)
        assert config.store.address == "consul.local:8500"
        assert config.mappings[0].on_change == "systemctl reload app"

    def test_load_json(self, tmp_path):
        config_file = tmp_path / "fsconsul.json"
        config_file.write_text(json.dumps({"mappings": [{"prefix": "app", "path": "/srv/app"}]}))
        assert load_config(config_file).mappings[0].target_directory == "/srv/app/"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "missing.yaml")

    def test_directory_is_not_a_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not a file"):
            load_config(tmp_path)

    def test_yaml_error_reports_line(self, tmp_path):
        config_file = tmp_path / "broken.yaml"
        config_file.write_text("mappings: [unclosed\n")
        with pytest.raises(ConfigError, match="at line"):
            load_config(config_file)

    def test_non_mapping_document(self, tmp_path):
        config_file = tmp_path / "list.yaml"
        config_file.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="must be a mapping"):
            read_config_file(config_file)

    def test_env_substitution(self, tmp_path, monkeypatch):
        monkeypatch.setenv("APP_DIR", "/srv/app")
        monkeypatch.delenv("UNSET_VAR", raising=False)
        config_file = tmp_path / "fsconsul.yaml"
        config_file.write_text("mappings:\n  - prefix: app\n    path: ${APP_DIR}\n    on_change: echo ${UNSET_VAR}\n")
        config = load_config(config_file)
        assert config.mappings[0].target_directory == "/srv/app/"
        assert config.mappings[0].on_change == "echo ${UNSET_VAR}"

    def test_env_defaults_fill_store(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CONSUL_HTTP_ADDR", "consul.env:8500")
        monkeypatch.setenv("CONSUL_HTTP_TOKEN", "env-token")
        config_file = tmp_path / "fsconsul.yaml"
        config_file.write_text("mappings:\n  - prefix: app\n    path: /srv\n")
        config = load_config(config_file)
        assert config.store.address == "consul.env:8500"
        assert config.store.auth_token == "env-token"

    def test_config_wins_over_env(self, monkeypatch):
        monkeypatch.setenv("CONSUL_HTTP_ADDR", "consul.env:8500")
        data = apply_env_defaults({"consul": {"addr": "consul.file:8500"}})
        assert data == {"consul": {"addr": "consul.file:8500"}}

    def test_substitute_nested(self, monkeypatch):
        monkeypatch.setenv("DC", "west")
        assert substitute_env_vars({"a": ["${DC}", 3], "b": {"c": "dc=${DC}"}}) == {"a": ["west", 3], "b": {"c": "dc=west"}}
