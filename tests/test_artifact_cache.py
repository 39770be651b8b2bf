from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from stream_bridge.generation import (
    ArtifactCache,
    ArtifactCategory,
    ArtifactStorage,
    CacheWriteError,
    InMemoryArtifactRepository,
    SqlAlchemyArtifactRepository,
    StoragePaths,
)
from stream_bridge.generation.models import utcnow


PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


@pytest.fixture(params=["memory", "sqlalchemy"])
def cache(request, tmp_path):
    storage = ArtifactStorage(StoragePaths(tmp_path / "cache"), fsync=False)
    if request.param == "memory":
        repo = InMemoryArtifactRepository()
    else:
        repo = SqlAlchemyArtifactRepository(f"sqlite+pysqlite:///{tmp_path / 'index.db'}")
    return ArtifactCache(storage, repo)


def test_store_resolve_describe_roundtrip(cache):
    key = cache.store(PNG_BYTES, "image/png")

    path = cache.resolve(key)
    assert path is not None
    assert path.read_bytes() == PNG_BYTES
    assert path.parent == cache.storage.paths.category_dir(ArtifactCategory.IMAGE)
    assert path.suffix == ".png"

    record = cache.describe(key)
    assert record is not None
    assert record.mime_type == "image/png"
    assert record.size_bytes == len(PNG_BYTES)
    assert record.category == ArtifactCategory.IMAGE
    assert record.to_dict()["key"] == key


def test_unknown_key_is_not_found(cache):
    assert cache.resolve("missing") is None
    assert cache.describe("missing") is None


def test_table_artifacts_land_in_tables_dir(cache):
    key = cache.store(b"a,b\n1,2\n", "text/csv", ArtifactCategory.TABLE)
    path = cache.resolve(key)
    assert path.parent.name == "tables"
    assert path.suffix == ".csv"
    assert cache.content_type_for(path) == "text/csv"
    assert cache.stats()["table"] == {"count": 1, "bytes": 8}


def test_concurrent_stores_never_collide(cache):
    payloads = [bytes([i]) * (i + 1) for i in range(40)]
    with ThreadPoolExecutor(max_workers=8) as pool:
        keys = list(pool.map(lambda data: cache.store(data, "image/png"), payloads))

    assert len(set(keys)) == len(payloads)
    for key, data in zip(keys, payloads):
        assert cache.resolve(key).read_bytes() == data


def test_evict_zero_hours_removes_everything(cache):
    payloads = [PNG_BYTES, b"\xff\xd8\xff" * 10, b"GIF89a"]
    keys = [
        cache.store(payloads[0], "image/png"),
        cache.store(payloads[1], "image/jpeg"),
        cache.store(payloads[2], "image/gif"),
    ]
    paths = [cache.resolve(k) for k in keys]

    result = cache.evict(max_age_hours=0)

    assert result.deleted_count == 3
    assert result.freed_bytes == sum(len(p) for p in payloads)
    for key, path in zip(keys, paths):
        assert cache.resolve(key) is None
        assert cache.describe(key) is None
        assert not path.exists()


def test_evict_keeps_records_younger_than_threshold(cache):
    old_key = cache.store(b"old", "image/png")
    record = cache.describe(old_key)
    record.created_at = utcnow() - timedelta(hours=48)
    cache.repo.save(record)
    fresh_key = cache.store(b"fresh", "image/png")

    result = cache.evict(max_age_hours=24)

    assert result.deleted_count == 1
    assert result.freed_bytes == 3
    assert cache.resolve(old_key) is None
    assert cache.resolve(fresh_key).read_bytes() == b"fresh"


def test_negative_age_is_rejected(cache):
    with pytest.raises(ValueError):
        cache.evict(-1)


def test_size_variants_resolve_and_fall_back(cache):
    key = cache.store(PNG_BYTES, "image/png")
    thumb = cache.store_variant(key, "thumb", b"small")

    assert cache.resolve(key, "thumb") == thumb
    assert cache.resolve(key, "thumb").read_bytes() == b"small"
    assert cache.resolve(key, "large").read_bytes() == PNG_BYTES
    assert cache.store_variant("missing", "thumb", b"x") is None

    cache.evict(0)
    assert not thumb.exists()


@pytest.mark.parametrize("label", ["a/b", "../thumb", "thumb.png", " "])
def test_invalid_variant_labels_fall_back_to_original(cache, label):
    key = cache.store(PNG_BYTES, "image/png")

    assert cache.resolve(key, label).read_bytes() == PNG_BYTES
    with pytest.raises(ValueError):
        cache.store_variant(key, label, b"x")


def test_write_failure_registers_nothing(cache, monkeypatch):
    def fail_write(*args, **kwargs):
        raise OSError("disk full")

    monkeypatch.setattr(cache.storage, "write_artifact", fail_write)
    with pytest.raises(CacheWriteError):
        cache.store(PNG_BYTES, "image/png")
    assert cache.repo.list_all() == []


def test_atomic_write_leaves_no_partial_files(cache):
    key = cache.store(PNG_BYTES, "image/png")
    image_dir = cache.storage.paths.category_dir(ArtifactCategory.IMAGE)
    assert [p.name for p in image_dir.iterdir()] == [f"{key}.png"]


def test_reconcile_drops_records_without_files(cache):
    kept = cache.store(b"kept", "image/png")
    lost = cache.store(b"lost", "image/png")
    cache.resolve(lost).unlink()

    assert cache.reconcile() == 1
    assert cache.describe(lost) is None
    assert cache.describe(kept) is not None
