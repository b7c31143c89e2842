import pytest

from crawlspace.crawl_config import Config, ConfigError, load_config, CONFIG_ENV_VAR


def test_defaults(monkeypatch):
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    config = load_config()
    assert config == Config()
    assert config.host == "localhost"
    assert config.port == 2222
    assert config.prompt == "> "


def test_load_from_file(tmp_path):
    path = tmp_path / "crawlspace.yaml"
    path.write_text("port: 9000\nprompt: 'crawl> '\nreserved: [secret]\n", encoding="utf-8")
    config = load_config(path)
    assert config.port == 9000
    assert config.prompt == "crawl> "
    assert config.reserved == ["secret"]
    assert config.host == "localhost"


def test_load_from_env_var(tmp_path, monkeypatch):
    path = tmp_path / "env.yaml"
    path.write_text("host: 127.0.0.1\n", encoding="utf-8")
    monkeypatch.setenv(CONFIG_ENV_VAR, str(path))
    assert load_config().host == "127.0.0.1"


def test_empty_file_is_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert load_config(path) == Config()


# Test cases: (id, yaml_text, message fragment)
INVALID_TEST_CASES = [
    ("unknown_key", "colour: blue\n", "unknown config keys: colour"),
    ("mixed_key_types", "1: x\nfoo: y\n", "unknown config keys: 1, foo"),
    ("not_mapping", "- 1\n- 2\n", "config must be a mapping"),
    ("bad_port", "port: high\n", "port must be an integer"),
    ("bad_reserved", "reserved: quit\n", "reserved must be a list"),
    ("bad_prompt", "prompt: 5\n", "prompt must be a string"),
    ("bad_yaml", "port: [1\n", "invalid config"),
]


@pytest.mark.parametrize("case_id, text, fragment", INVALID_TEST_CASES, ids=[c[0] for c in INVALID_TEST_CASES])
def test_invalid_config(tmp_path, case_id, text, fragment):
    path = tmp_path / "bad.yaml"
    path.write_text(text, encoding="utf-8")
    with pytest.raises(ConfigError) as exc:
        load_config(path)
    assert fragment in str(exc.value)


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError) as exc:
        load_config(tmp_path / "absent.yaml")
    assert "cannot read config" in str(exc.value)
