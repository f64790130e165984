"""Tests for open-completions config loading."""

import yaml

from open_completions.config import DEFAULT_BASE_URL, ClientConfig, load_config
from open_completions.llm.backoff import RetryPolicy


class TestClientConfig:
    def test_defaults(self):
        cfg = ClientConfig()
        assert cfg.base_url == DEFAULT_BASE_URL
        assert cfg.api_key == ""
        assert cfg.retry == RetryPolicy()
        assert cfg.extra_headers == {}


class TestLoadConfig:
    def test_defaults_when_no_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        cfg = load_config(tmp_path / "does_not_exist.yaml")
        assert cfg.base_url == DEFAULT_BASE_URL
        assert cfg.retry.max_retries == 3

    def test_load_from_yaml(self, tmp_path, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        config = {
            "base_url": "http://localhost:11434/v1",
            "api_key": "sk-test",
            "model": "qwen3-8b",
            "timeout": 5,
            "stream_read_timeout": 120,
            "extra_headers": {"X-Org": "acme"},
            "retry": {
                "max_retries": 5,
                "base_delay": 0.25,
                "respect_retry_after": False,
                "jitter": True,
            },
        }
        config_path = tmp_path / "config.yaml"
        config_path.write_text(yaml.dump(config))

        cfg = load_config(config_path)
        assert cfg.base_url == "http://localhost:11434/v1"
        assert cfg.api_key == "sk-test"
        assert cfg.model == "qwen3-8b"
        assert cfg.timeout == 5
        assert cfg.connect_timeout == 10
        assert cfg.stream_read_timeout == 120
        assert cfg.extra_headers == {"X-Org": "acme"}
        assert cfg.retry == RetryPolicy(
            max_retries=5, base_delay=0.25, max_delay=30.0, respect_retry_after=False,
        )

    def test_load_empty_yaml(self, tmp_path, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        config_path = tmp_path / "config.yaml"
        config_path.write_text("")

        cfg = load_config(config_path)
        assert cfg == ClientConfig()

    def test_api_key_from_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        config_path = tmp_path / "config.yaml"
        config_path.write_text(yaml.dump({"model": "m"}))

        assert load_config(config_path).api_key == "sk-env"

    def test_file_key_wins_over_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        config_path = tmp_path / "config.yaml"
        config_path.write_text(yaml.dump({"api_key": "sk-file"}))

        assert load_config(config_path).api_key == "sk-file"

    def test_search_path_in_cwd(self, tmp_path, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        monkeypatch.chdir(tmp_path)
        (tmp_path / "open_completions.yaml").write_text(yaml.dump({"model": "from-cwd"}))

        assert load_config().model == "from-cwd"
