"""
Unit tests for codecli.index.store

Ingestion, ID allocation, persistence round trips, search semantics and
locking discipline.  The embedding service is replaced by in-process
fakes throughout.
"""

from __future__ import annotations

import json
import os
import stat
import threading

import pytest


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class FakeEmbedder:
    """Deterministic 3-d vectors derived from the text."""

    def __init__(self, fail_on=None, on_embed=None):
        self.calls: list[str] = []
        self._fail_on = fail_on
        self._on_embed = on_embed

    def embed(self, text):
        from codecli.llm.base import ServiceError

        self.calls.append(text)
        if self._on_embed is not None:
            self._on_embed(text)
        if self._fail_on is not None and self._fail_on in text:
            raise ServiceError("embedding service unavailable")
        return [float(len(text)), float(text.count("a")), 1.0]


class MapEmbedder:
    """Returns a fixed vector per text, falling back to a default."""

    def __init__(self, vectors, default=(0.0, 1.0)):
        self._vectors = vectors
        self._default = list(default)

    def embed(self, text):
        return list(self._vectors.get(text, self._default))


def _write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


def _numbered(n, prefix="line"):
    return "\n".join(f"{prefix} {i}" for i in range(1, n + 1)) + "\n"


def _all_ids(store):
    return [d.id for d in store.documents()] + [c.id for c in store.chunks()]


# ---------------------------------------------------------------------------
# Tests: ingestion
# ---------------------------------------------------------------------------

class TestIngest:
    def test_single_short_file(self, tmp_path):
        from codecli.index.store import IndexStore

        _write(tmp_path / "a.go", _numbered(10))
        store = IndexStore(FakeEmbedder())
        report = store.ingest(str(tmp_path), [".go"])

        (doc,) = store.documents()
        (chunk,) = store.chunks()
        assert doc.path.endswith("a.go")
        assert doc.chunk_ids == [chunk.id]
        assert (chunk.start_line, chunk.end_line) == (1, 10)
        assert chunk.document_id == doc.id
        assert report.summary()["indexed"] == 1
        assert report.chunk_count == 1

    def test_long_file_window_starts(self, tmp_path):
        from codecli.index.store import IndexStore

        _write(tmp_path / "big.py", _numbered(120))
        store = IndexStore(FakeEmbedder())
        store.ingest(str(tmp_path), [".py"])

        chunks = store.chunks()
        assert [c.start_line for c in chunks] == [1, 46, 91]
        assert chunks[-1].end_line == 120

    def test_custom_window(self, tmp_path):
        from codecli.index.store import IndexStore

        _write(tmp_path / "f.py", _numbered(30))
        store = IndexStore(FakeEmbedder(), window=10, overlap=0)
        store.ingest(str(tmp_path), ["py"])
        assert [c.start_line for c in store.chunks()] == [1, 11, 21]

    def test_empty_file_skipped_without_id(self, tmp_path):
        from codecli.index.store import IndexStore

        _write(tmp_path / "empty.py", "")
        _write(tmp_path / "real.py", "x = 1\n")
        store = IndexStore(FakeEmbedder())
        report = store.ingest(str(tmp_path), [".py"])

        assert len(report.skipped) == 1
        assert report.skipped[0].path.endswith("empty.py")
        (doc,) = store.documents()
        assert doc.id == 1
        assert store.chunks()[0].id == 2

    def test_ids_unique_across_runs(self, tmp_path):
        from codecli.index.store import IndexStore

        for i in range(3):
            _write(tmp_path / f"m{i}.py", _numbered(70 + i))
        store = IndexStore(FakeEmbedder())
        store.ingest(str(tmp_path), [".py"])
        store.ingest(str(tmp_path), [".py"])

        ids = _all_ids(store)
        assert len(ids) == len(set(ids))
        assert len(store.documents()) == 6

    def test_reingest_same_path_is_additive(self, tmp_path):
        from codecli.index.store import IndexStore

        _write(tmp_path / "a.py", "print('a')\n")
        store = IndexStore(FakeEmbedder())
        store.ingest(str(tmp_path), [".py"])
        store.ingest(str(tmp_path), [".py"])

        docs = store.documents()
        assert len(docs) == 2
        assert docs[0].path == docs[1].path
        assert docs[0].id != docs[1].id

    def test_blank_chunks_are_not_embedded(self, tmp_path):
        from codecli.index.store import IndexStore

        _write(tmp_path / "gap.py", "top\n" + "\n" * 120 + "bottom\n")
        embedder = FakeEmbedder()
        store = IndexStore(embedder)
        store.ingest(str(tmp_path), [".py"])

        assert all(text.strip() for text in embedder.calls)
        assert len(embedder.calls) == len(store.chunks())

    def test_progress_callback(self, tmp_path):
        from codecli.index.store import IndexStore

        for name in ("a.py", "b.py"):
            _write(tmp_path / name, "pass\n")
        seen = []
        store = IndexStore(FakeEmbedder())
        store.ingest(str(tmp_path), [".py"],
                     progress_callback=lambda cur, total, path: seen.append((cur, total)))
        assert seen == [(1, 2), (2, 2)]

    def test_without_embedder_raises(self, tmp_path):
        from codecli.index.errors import CodeIndexError
        from codecli.index.store import IndexStore

        with pytest.raises(CodeIndexError):
            IndexStore().ingest(str(tmp_path), [".py"])

    def test_invalid_chunking_rejected(self):
        from codecli.index.store import IndexStore

        with pytest.raises(ValueError):
            IndexStore(FakeEmbedder(), window=5, overlap=5)


# ---------------------------------------------------------------------------
# Tests: ingestion failures
# ---------------------------------------------------------------------------

class TestIngestFailures:
    def test_embedding_error_aborts_run(self, tmp_path):
        from codecli.index.store import IndexStore
        from codecli.llm.base import ServiceError

        _write(tmp_path / "a.py", "alpha\n")
        _write(tmp_path / "b.py", "boom\n")
        _write(tmp_path / "c.py", "gamma\n")
        store = IndexStore(FakeEmbedder(fail_on="boom"))

        with pytest.raises(ServiceError):
            store.ingest(str(tmp_path), [".py"])

        paths = [os.path.basename(d.path) for d in store.documents()]
        assert "a.py" in paths
        assert "c.py" not in paths
        # a.py stays searchable after the aborted run
        assert store.search([5.0, 1.0, 1.0], limit=5)

    def test_unreadable_file_aborts_run(self, tmp_path):
        from codecli.index.errors import IndexIOError
        from codecli.index.store import IndexStore

        _write(tmp_path / "a.py", "alpha\n")
        try:
            os.symlink(str(tmp_path / "missing-target"), str(tmp_path / "b.py"))
        except (OSError, NotImplementedError):
            pytest.skip("symlinks not supported")

        store = IndexStore(FakeEmbedder())
        with pytest.raises(IndexIOError):
            store.ingest(str(tmp_path), [".py"])
        assert len(store.documents()) == 1

    def test_keep_going_records_failures(self, tmp_path):
        from codecli.index.store import IndexStore
        from codecli.llm.base import ServiceError

        _write(tmp_path / "a.py", "alpha\n")
        _write(tmp_path / "b.py", "boom\n")
        _write(tmp_path / "c.py", "gamma\n")
        store = IndexStore(FakeEmbedder(fail_on="boom"))

        report = store.ingest(str(tmp_path), [".py"], fail_fast=False)

        assert [os.path.basename(f.path) for f in report.failed] == ["b.py"]
        assert isinstance(report.failed[0].error, ServiceError)
        assert len(report.succeeded) == 2
        assert report.summary()["failed"] == 1

    def test_missing_root(self, tmp_path):
        from codecli.index.errors import IndexIOError
        from codecli.index.store import IndexStore

        store = IndexStore(FakeEmbedder())
        with pytest.raises(IndexIOError):
            store.ingest(str(tmp_path / "absent"), [".py"])
        assert not store.is_ready

    def test_cancel_event_stops_run_without_holding_lock(self, tmp_path):
        from codecli.index.errors import IngestCancelled
        from codecli.index.store import IndexStore

        _write(tmp_path / "big.py", _numbered(200))
        cancel = threading.Event()
        store = IndexStore(FakeEmbedder(on_embed=lambda text: cancel.set()))

        with pytest.raises(IngestCancelled):
            store.ingest(str(tmp_path), [".py"], cancel_event=cancel)

        assert len(store.chunks()) == 1
        assert not store._lock.write_held
        assert store._lock.readers == 0

    def test_embedding_runs_outside_the_lock(self, tmp_path):
        from codecli.index.store import IndexStore

        _write(tmp_path / "a.py", _numbered(100))
        observed = []
        store = None

        def _check(text):
            observed.append((store._lock.write_held, store._lock.readers))
            # A concurrent search must be able to proceed mid-ingestion.
            t = threading.Thread(target=store.stats)
            t.start()
            t.join(timeout=2)
            observed.append(t.is_alive())

        store = IndexStore(FakeEmbedder(on_embed=_check))
        store.ingest(str(tmp_path), [".py"])

        assert observed
        assert all(o in ((False, 0), False) for o in observed)


# ---------------------------------------------------------------------------
# Tests: search
# ---------------------------------------------------------------------------

class TestSearch:
    def test_search_before_load_or_ingest(self):
        from codecli.index.errors import IndexNotFoundError
        from codecli.index.store import IndexStore

        with pytest.raises(IndexNotFoundError):
            IndexStore().search([1.0, 0.0], limit=5)

    def test_empty_store_returns_nothing(self, tmp_path):
        from codecli.index.store import IndexStore

        store = IndexStore(FakeEmbedder())
        store.ingest(str(tmp_path), [".py"])
        assert store.search([1.0, 0.0, 0.0], limit=5) == []

    def test_axis_vectors_ranked(self, tmp_path):
        from codecli.index.store import IndexStore

        _write(tmp_path / "a.py", "east\n")
        _write(tmp_path / "b.py", "north\n")
        store = IndexStore(MapEmbedder({"east": [1.0, 0.0], "north": [0.0, 1.0]}))
        store.ingest(str(tmp_path), [".py"])

        results = store.search([1.0, 0.0], limit=2)
        assert [r.score for r in results] == [1.0, 0.0]
        assert [os.path.basename(r.path) for r in results] == ["a.py", "b.py"]
        assert results[0].content == "east"

    def test_default_limit_for_non_positive(self, tmp_path):
        from codecli.index.store import IndexStore

        for i in range(12):
            _write(tmp_path / f"f{i:02d}.py", f"value_{i}\n")
        store = IndexStore(FakeEmbedder())
        store.ingest(str(tmp_path), [".py"])

        assert len(store.search([1.0, 1.0, 1.0], limit=0)) == 10
        assert len(store.search([1.0, 1.0, 1.0], limit=-3)) == 10

    def test_limit_above_chunk_count(self, tmp_path):
        from codecli.index.store import IndexStore

        _write(tmp_path / "a.py", "one\n")
        _write(tmp_path / "b.py", "two\n")
        store = IndexStore(FakeEmbedder())
        store.ingest(str(tmp_path), [".py"])
        assert len(store.search([1.0, 0.0, 0.0], limit=100)) == 2

    def test_equal_scores_follow_chunk_id(self, tmp_path):
        from codecli.index.store import IndexStore

        for name in ("c.py", "a.py", "b.py"):
            _write(tmp_path / name, f"{name}\n")
        store = IndexStore(MapEmbedder({}, default=(1.0, 1.0)))
        store.ingest(str(tmp_path), [".py"])

        results = store.search([1.0, 1.0], limit=3)
        assert [os.path.basename(r.path) for r in results] == ["a.py", "b.py", "c.py"]

    def test_dimension_mismatch_scores_zero(self, tmp_path, caplog):
        from codecli.index.store import IndexStore

        _write(tmp_path / "a.py", "hello\n")
        store = IndexStore(FakeEmbedder())
        store.ingest(str(tmp_path), [".py"])

        with caplog.at_level("WARNING", logger="codecli.index.store"):
            results = store.search([1.0, 0.0], limit=1)
        assert results[0].score == 0.0
        assert "dimension" in caplog.text

    def test_search_does_not_mutate(self, tmp_path):
        from codecli.index.store import IndexStore

        _write(tmp_path / "a.py", _numbered(60))
        store = IndexStore(FakeEmbedder())
        store.ingest(str(tmp_path), [".py"])
        before = store.stats()
        store.search([1.0, 1.0, 1.0], limit=3)
        assert store.stats() == before

    def test_query_embeds_text(self, tmp_path):
        from codecli.index.store import IndexStore

        _write(tmp_path / "a.py", "east\n")
        _write(tmp_path / "b.py", "north\n")
        embedder = MapEmbedder({"east": [1.0, 0.0], "north": [0.0, 1.0],
                                "go north": [0.1, 0.9]})
        store = IndexStore(embedder)
        store.ingest(str(tmp_path), [".py"])

        (top,) = store.query("go north", limit=1)
        assert os.path.basename(top.path) == "b.py"

    def test_query_before_load(self):
        from codecli.index.errors import IndexNotFoundError
        from codecli.index.store import IndexStore

        with pytest.raises(IndexNotFoundError):
            IndexStore(FakeEmbedder()).query("anything")

    def test_concurrent_searches(self, tmp_path):
        from codecli.index.store import IndexStore

        for i in range(5):
            _write(tmp_path / f"f{i}.py", _numbered(80, prefix=f"f{i}"))
        store = IndexStore(FakeEmbedder())
        store.ingest(str(tmp_path), [".py"])
        expected = store.search([3.0, 1.0, 1.0], limit=4)

        outputs = []

        def worker():
            for _ in range(20):
                outputs.append(store.search([3.0, 1.0, 1.0], limit=4))

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)
        assert len(outputs) == 80
        assert all(o == expected for o in outputs)

    def test_reset_returns_to_unloaded(self, tmp_path):
        from codecli.index.errors import IndexNotFoundError
        from codecli.index.store import IndexStore

        _write(tmp_path / "a.py", "x\n")
        store = IndexStore(FakeEmbedder())
        store.ingest(str(tmp_path), [".py"])
        store.reset()
        assert store.stats()["chunks"] == 0
        assert store.stats()["next_id"] == 1
        with pytest.raises(IndexNotFoundError):
            store.search([1.0, 0.0, 0.0])


# ---------------------------------------------------------------------------
# Tests: persistence
# ---------------------------------------------------------------------------

class TestPersistence:
    def _populated(self, tmp_path):
        from codecli.index.store import IndexStore

        src = tmp_path / "src"
        _write(src / "a.py", _numbered(120, prefix="alpha"))
        _write(src / "b.go", "package main\n")
        store = IndexStore(FakeEmbedder())
        store.ingest(str(src), [".py", ".go"])
        return store

    def test_round_trip(self, tmp_path):
        from codecli.index.store import IndexStore

        store = self._populated(tmp_path)
        path = str(tmp_path / "out" / "metadata.json")
        store.save(path)

        loaded = IndexStore(FakeEmbedder())
        loaded.load(path)

        assert loaded.documents() == store.documents()
        assert loaded.chunks() == store.chunks()
        q = [400.0, 2.0, 1.0]
        assert loaded.search(q, limit=5) == store.search(q, limit=5)

    def test_next_id_after_load(self, tmp_path):
        from codecli.index.store import IndexStore

        store = self._populated(tmp_path)
        path = str(tmp_path / "metadata.json")
        store.save(path)

        loaded = IndexStore(FakeEmbedder())
        loaded.load(path)
        assert loaded.stats()["next_id"] == max(_all_ids(store)) + 1

        _write(tmp_path / "more" / "c.py", "more = True\n")
        loaded.ingest(str(tmp_path / "more"), [".py"])
        ids = _all_ids(loaded)
        assert len(ids) == len(set(ids))

    def test_record_shape(self, tmp_path):
        store = self._populated(tmp_path)
        path = tmp_path / "metadata.json"
        store.save(str(path))

        record = json.loads(path.read_text())
        assert record["version"] == 1
        doc = record["documents"]["1"]
        assert doc["id"] == 1
        assert doc["chunks"][0]["start_line"] == 1
        assert len(doc["chunks"][0]["vector"]) == 3

    def test_save_leaves_no_temp_files(self, tmp_path):
        store = self._populated(tmp_path)
        out = tmp_path / "out"
        store.save(str(out / "metadata.json"))
        assert os.listdir(out) == ["metadata.json"]

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permission bits")
    def test_saved_file_is_world_readable(self, tmp_path):
        store = self._populated(tmp_path)
        path = tmp_path / "out" / "metadata.json"
        store.save(str(path))
        assert stat.S_IMODE(os.stat(path).st_mode) == 0o644

    def test_save_empty_then_load(self, tmp_path):
        from codecli.index.store import IndexStore

        store = IndexStore(FakeEmbedder())
        store.ingest(str(tmp_path), [".py"])
        path = str(tmp_path / "empty.json")
        store.save(path)

        loaded = IndexStore()
        loaded.load(path)
        assert loaded.search([1.0], limit=5) == []
        assert loaded.stats()["next_id"] == 1

    def test_save_to_unwritable_path(self, tmp_path):
        from codecli.index.errors import IndexIOError

        store = self._populated(tmp_path)
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        with pytest.raises(IndexIOError):
            store.save(str(blocker / "metadata.json"))

    def test_load_missing(self, tmp_path):
        from codecli.index.errors import IndexNotFoundError
        from codecli.index.store import IndexStore

        with pytest.raises(IndexNotFoundError):
            IndexStore().load(str(tmp_path / "nothing.json"))

    @pytest.mark.parametrize("payload", [
        "{not json",
        "[]",
        json.dumps({"version": 99, "documents": {}}),
        json.dumps({"version": 1}),
        json.dumps({"version": 1, "documents": {"1": {"id": 1, "path": "a",
                                                       "content": "", "chunks": "x"}}}),
        json.dumps({"version": 1, "documents": {"1": {
            "id": 1, "path": "a", "content": "",
            "chunks": [{"id": 1, "start_line": 1, "end_line": 1,
                        "content": "c", "vector": [1.0]}]}}}),
        json.dumps({"version": 1, "documents": {"1": {
            "id": 1, "path": "a", "content": "",
            "chunks": [{"id": 2, "start_line": 3, "end_line": 1,
                        "content": "c", "vector": [1.0]}]}}}),
        json.dumps({"version": 1, "documents": {"1": {
            "id": 1, "path": "a", "content": "",
            "chunks": [{"id": 2, "start_line": 1, "end_line": 1,
                        "content": "c", "vector": ["x"]}]}}}),
        json.dumps({"version": 1, "documents": {"1": {
            "id": 1, "path": "a", "content": "",
            "chunks": [{"id": 2, "start_line": 1, "end_line": 1,
                        "content": "c", "vector": [float("nan"), 1.0]}]}}}),
        '{"version": 1, "documents": {"1": {"id": 1, "path": "a", "content": "",'
        ' "chunks": [{"id": 2, "start_line": 1, "end_line": 1,'
        ' "content": "c", "vector": [1.0, -Infinity]}]}}}',
        json.dumps({"version": 1, "documents": {"7": {
            "id": 1, "path": "a", "content": "", "chunks": []}}}),
    ])
    def test_load_rejects_bad_records(self, tmp_path, payload):
        from codecli.index.errors import IndexFormatError
        from codecli.index.store import IndexStore

        path = tmp_path / "bad.json"
        path.write_text(payload)
        with pytest.raises(IndexFormatError):
            IndexStore().load(str(path))

    def test_failed_load_keeps_prior_state(self, tmp_path):
        from codecli.index.errors import IndexFormatError

        store = self._populated(tmp_path)
        before_docs = store.documents()
        before_stats = store.stats()

        bad = tmp_path / "bad.json"
        bad.write_text(json.dumps({"version": 1, "documents": {"1": "oops"}}))
        with pytest.raises(IndexFormatError):
            store.load(str(bad))

        assert store.documents() == before_docs
        assert store.stats() == before_stats

    def test_load_replaces_state(self, tmp_path):
        from codecli.index.store import IndexStore

        first = self._populated(tmp_path)
        path = str(tmp_path / "metadata.json")
        first.save(path)

        other = IndexStore(FakeEmbedder())
        _write(tmp_path / "other" / "z.py", "zzz\n")
        other.ingest(str(tmp_path / "other"), [".py"])
        other.load(path)

        assert [d.path for d in other.documents()] == [d.path for d in first.documents()]
