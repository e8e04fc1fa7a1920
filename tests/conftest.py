import importlib
import sys
from datetime import datetime
from pathlib import Path

import pytest

# Ensure the package under test is importable without installation
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))


@pytest.fixture
def fresh_config(monkeypatch, tmp_path):
    """
    Reload config with a temporary database path to keep tests isolated.
    """
    db_path = tmp_path / "test.db"
    monkeypatch.setenv("MENU_REC_DB", str(db_path))
    import menu_rec.config as config

    importlib.reload(config)
    yield config
    monkeypatch.undo()
    importlib.reload(config)


@pytest.fixture
def fresh_db(monkeypatch, tmp_path):
    """
    Reload config/database modules with a temp DB and cleanly close the pool after use.
    """
    db_path = tmp_path / "test.db"
    monkeypatch.setenv("MENU_REC_DB", str(db_path))

    import menu_rec.config as config
    import menu_rec.database as database

    importlib.reload(config)
    importlib.reload(database)

    database.init_db()
    yield database
    database.close_pool()


@pytest.fixture
def fixed_now():
    return datetime(2024, 5, 1, 12, 0, 0)


@pytest.fixture
def catalog():
    from menu_rec.models import MenuItem

    return [
        MenuItem(id=1, cuisine_id=1, category_id=1, spicy_level=2, is_veg=True, name="Veg Momo", restaurant_id=10),
        MenuItem(id=2, cuisine_id=3, category_id=2, spicy_level=1, is_veg=False, name="Chicken Pizza", restaurant_id=10),
        MenuItem(id=3, cuisine_id=1, category_id=1, spicy_level=3, is_veg=False, name="Buff Momo", restaurant_id=10),
        MenuItem(id=4, cuisine_id=5, category_id=3, spicy_level=4, is_veg=False, name="Chilli Chicken", restaurant_id=20),
        MenuItem(id=5, cuisine_id=8, category_id=4, spicy_level=2, is_veg=True, name="Veg Biryani", restaurant_id=20),
    ]
