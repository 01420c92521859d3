import datetime
import json

from ai_daily_digest.storage import DigestRepository, JsonFileStore, RssSourceRepository, TranslationCache
from ai_daily_digest.storage import store as store_module

NOW = datetime.datetime(2024, 5, 3, 12, 0, tzinfo=datetime.timezone.utc)


def _build_repo(store: JsonFileStore | None = None) -> DigestRepository:
    return DigestRepository(store or JsonFileStore(None), now_provider=lambda: NOW)


def test_store_persists_atomically(tmp_path) -> None:
    path = tmp_path / "db.json"
    store = JsonFileStore(path)
    store.set("digests", "2024-05-03", {"status": "done"})
    digests_file = tmp_path / "db.digests.json"
    assert store.namespace_path("digests") == digests_file
    assert json.loads(digests_file.read_text(encoding="utf-8")) == {"2024-05-03": {"status": "done"}}
    assert not (tmp_path / "db.digests.json.tmp").exists()
    assert JsonFileStore(path).get("digests", "2024-05-03") == {"status": "done"}


def test_namespace_writes_leave_other_files_alone(tmp_path, monkeypatch) -> None:
    store = JsonFileStore(tmp_path / "db.json")
    store.set("digests", "2024-05-03", {"status": "done"})

    written: list[str] = []
    real_write = store_module._atomic_write_json

    def _record(path, payload) -> None:
        written.append(path.name)
        real_write(path, payload)

    monkeypatch.setattr(store_module, "_atomic_write_json", _record)
    cache = TranslationCache(store, now_provider=lambda: NOW)
    cache.save("https://a", title_zh="标题", summary="摘要", content="正文" * 1000)
    cache.delete("https://a")
    assert written == ["db.translations.json", "db.translations.json"]
    assert JsonFileStore(tmp_path / "db.json").get("digests", "2024-05-03") == {"status": "done"}


def test_store_returns_copies() -> None:
    store = JsonFileStore(None)
    value = {"articles": [1]}
    store.set("ns", "k", value)
    value["articles"].append(2)
    store.get("ns", "k")["articles"].append(3)
    assert store.get("ns", "k") == {"articles": [1]}


def test_store_ignores_corrupt_file(tmp_path) -> None:
    path = tmp_path / "db.json"
    (tmp_path / "db.digests.json").write_text("{not json", encoding="utf-8")
    assert JsonFileStore(path).items("digests") == []


def test_digest_save_merges_fields() -> None:
    repo = _build_repo()
    repo.save("2024-05-03", {"status": "generating", "totalFeeds": 3})
    digest = repo.save("2024-05-03", {"status": "done", "articles": []})
    assert digest["totalFeeds"] == 3
    assert digest["status"] == "done"
    assert digest["createdAt"] == "2024-05-03T12:00:00Z"


def test_latest_and_listing() -> None:
    repo = _build_repo()
    repo.save("2024-05-01", {"status": "done", "articles": [{"title": "a"}], "totalArticles": 9})
    repo.save("2024-05-02", {"status": "error", "articles": []})
    assert repo.get()["date"] == "2024-05-02"
    assert repo.latest_with_articles()["date"] == "2024-05-01"
    rows = repo.list_recent()
    assert [r["date"] for r in rows] == ["2024-05-02", "2024-05-01"]
    assert rows[1]["articleCount"] == 1
    assert repo.stats()["totalDigests"] == 1


def test_set_status_records_error() -> None:
    repo = _build_repo()
    repo.save("2024-05-03", {"status": "generating"})
    repo.set_status("2024-05-03", "error", message="No articles")
    digest = repo.get("2024-05-03")
    assert digest["status"] == "error"
    assert digest["errorMessage"] == "No articles"


def test_share_token_is_idempotent() -> None:
    repo = _build_repo()
    repo.save("2024-05-03", {"status": "done", "articles": []})
    token = repo.create_share_token("2024-05-03")
    assert token and len(token) == 32
    assert repo.create_share_token("2024-05-03") == token
    assert repo.get_by_share_token(token)["date"] == "2024-05-03"
    assert repo.get_by_share_token("nope") is None
    assert repo.create_share_token("1999-01-01") is None


def test_translation_round_trip_and_prune() -> None:
    store = JsonFileStore(None)
    old = TranslationCache(store, now_provider=lambda: NOW - datetime.timedelta(days=40))
    cache = TranslationCache(store, now_provider=lambda: NOW)
    old.save("https://example.com/old", title_zh="旧", summary="", content="旧文")
    saved = cache.save("https://example.com/new", title_zh="新", summary="摘要", content="新文")
    assert cache.get("https://example.com/new") == saved
    assert cache.count() == 2
    assert cache.prune(30) == 1
    assert cache.get("https://example.com/old") is None
    assert cache.delete("https://example.com/new") is True
    assert cache.count() == 0


def test_rss_sources_default_to_empty() -> None:
    repo = RssSourceRepository(JsonFileStore(None))
    assert repo.get() == []
    repo.save([{"name": "Blog", "xmlUrl": "https://blog.example.com/rss", "htmlUrl": ""}])
    assert repo.get()[0]["name"] == "Blog"


def test_digest_start_keeps_only_share_token_and_creation_time() -> None:
    repo = _build_repo()
    repo.save("2024-05-03", {"status": "done", "articles": [{"title": "a"}], "highlights": "h"})
    repo.set_status("2024-05-03", "error", message="boom")
    token = repo.create_share_token("2024-05-03")

    digest = repo.start("2024-05-03", {"status": "generating", "hours": 24})
    assert digest == {
        "status": "generating",
        "hours": 24,
        "shareToken": token,
        "date": "2024-05-03",
        "createdAt": "2024-05-03T12:00:00Z",
        "updatedAt": "2024-05-03T12:00:00Z",
    }
    assert repo.get_by_share_token(token)["status"] == "generating"
