from config_utils import expand_env_vars, get_config, load_config


def test_expand_env_vars(monkeypatch):
    monkeypatch.setenv("PLANT_TEST_URL", "https://hooks.example/abc")
    monkeypatch.delenv("PLANT_TEST_MISSING", raising=False)
    cfg = {
        "a": "${PLANT_TEST_URL}",
        "b": ["${PLANT_TEST_MISSING}", 3],
        "c": {"d": "plain ${PLANT_TEST_URL}"},
    }
    assert expand_env_vars(cfg) == {
        "a": "https://hooks.example/abc",
        "b": ["${PLANT_TEST_MISSING}", 3],
        "c": {"d": "plain ${PLANT_TEST_URL}"},
    }


def test_load_config_expands(monkeypatch, tmp_path):
    monkeypatch.setenv("PLANT_DB_URL", "sqlite:///tmp.db")
    path = tmp_path / "config.yml"
    path.write_text('app:\n  db_url: "${PLANT_DB_URL}"\n')
    assert load_config(str(path)) == {"app": {"db_url": "sqlite:///tmp.db"}}


def test_get_config_uses_env_path(monkeypatch, tmp_path):
    path = tmp_path / "other.yml"
    path.write_text("alerts:\n  max_active: 5\n")
    monkeypatch.setenv("PLANT_MONITOR_CONFIG", str(path))
    assert get_config()["alerts"]["max_active"] == 5


def test_empty_config_file(tmp_path):
    path = tmp_path / "empty.yml"
    path.write_text("")
    assert load_config(str(path)) == {}
