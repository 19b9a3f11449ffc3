from __future__ import annotations

import pytest

from usbpass.errors import PersistenceFailed
from usbpass.favorites import FavoritesStore
from usbpass.models import DeviceIdentity


@pytest.fixture
def store(tmp_path):
    s = FavoritesStore(tmp_path / "nested" / "favorites.db")
    yield s
    s.close()


def test_add_list_remove(store) -> None:
    logi = DeviceIdentity("046d", "c548")
    assert store.list_favorites() == []
    store.add_favorite(logi, "Bolt receiver")
    favs = store.list_favorites()
    assert len(favs) == 1
    assert favs[0].identity == logi
    assert favs[0].description == "Bolt receiver"
    assert favs[0].created_at
    assert store.is_favorite(logi)
    assert store.remove_favorite(logi) is True
    assert store.remove_favorite(logi) is False
    assert not store.is_favorite(logi)


def test_readd_overwrites_description(store) -> None:
    logi = DeviceIdentity("046d", "c548")
    store.add_favorite(logi, "A")
    first = store.list_favorites()[0]
    store.add_favorite(logi, "B")
    favs = store.list_favorites()
    assert len(favs) == 1
    assert favs[0].description == "B"
    assert favs[0].id == first.id


def test_newest_first(store) -> None:
    store.add_favorite(DeviceIdentity("046d", "c548"), "first")
    store.add_favorite(DeviceIdentity("0781", "5583"), "second")
    assert [f.description for f in store.list_favorites()] == ["second", "first"]


def test_reopen_persists(tmp_path) -> None:
    path = tmp_path / "favorites.db"
    s = FavoritesStore(path)
    s.add_favorite(DeviceIdentity("1d6b", "0002"), "hub")
    s.close()
    s2 = FavoritesStore(path)
    try:
        assert [f.identity.key for f in s2.list_favorites()] == ["1d6b:0002"]
    finally:
        s2.close()


def test_closed_store_raises_persistence_failed(tmp_path) -> None:
    s = FavoritesStore(tmp_path / "favorites.db")
    s.close()
    with pytest.raises(PersistenceFailed):
        s.list_favorites()
