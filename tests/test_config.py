import importlib

from menu_rec import config


def test_env_overrides_and_validation(fresh_config, monkeypatch):
    monkeypatch.setenv("MENU_REC_CONTENT_WEIGHT", "0.75")
    monkeypatch.setenv("MENU_REC_K_NEIGHBORS", "0")  # min clamp
    monkeypatch.setenv("MENU_REC_TIME_DECAY", "-1")  # min clamp

    cfg = importlib.reload(config)

    assert cfg.CONTENT_WEIGHT == 0.75
    assert cfg.COLLABORATIVE_WEIGHT == 0.25
    assert cfg.DEFAULT_K_NEIGHBORS == 1
    assert cfg.TIME_DECAY_FACTOR == 0.0


def test_db_path_respects_env(fresh_config, monkeypatch, tmp_path):
    db_path = tmp_path / "custom.db"
    monkeypatch.setenv("MENU_REC_DB", str(db_path))

    cfg = importlib.reload(config)

    assert cfg.DB_PATH == db_path


def test_invalid_env_values_fall_back_to_defaults(fresh_config, monkeypatch):
    monkeypatch.setenv("MENU_REC_CONTENT_WEIGHT", "not-a-float")
    monkeypatch.setenv("MENU_REC_COLLAB_MIN_RATINGS", "oops")
    monkeypatch.setenv("MENU_REC_DISH_COUNT", "bad-int")

    cfg = importlib.reload(config)

    assert cfg.CONTENT_WEIGHT == 0.6
    assert cfg.COLLAB_MIN_RATINGS == 10
    assert cfg.DISH_COUNT == 8


def test_content_weight_is_capped_at_one(fresh_config, monkeypatch):
    monkeypatch.setenv("MENU_REC_CONTENT_WEIGHT", "1.5")

    cfg = importlib.reload(config)

    assert cfg.CONTENT_WEIGHT == 1.0
    assert cfg.COLLABORATIVE_WEIGHT == 0.0
