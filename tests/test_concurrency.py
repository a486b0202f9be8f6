"""Concurrent writers on one document must form a single unbroken chain."""

import threading

import pytest

from docstore.store import DocumentStore
from docstore.engine.config import StoreConfig

WRITERS = 8
WRITES_PER_WRITER = 25


def run_writers(store, doc_id):
    results = []
    errors = []
    lock = threading.Lock()
    start = threading.Barrier(WRITERS)

    def writer(n):
        start.wait()
        for i in range(WRITES_PER_WRITER):
            try:
                rev = store.put_revision(doc_id, f"{n}:{i}".encode())
            except Exception as e:  # collected and asserted on below
                with lock:
                    errors.append(e)
                continue
            with lock:
                results.append(rev)

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(WRITERS)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results, errors


@pytest.mark.parametrize("policy", ["timestamp", "sequence"])
class TestConcurrentWriters:
    def test_single_chain(self, memory_backend, policy):
        store = DocumentStore(memory_backend, StoreConfig(id_policy=policy, advance_retries=10000))
        results, errors = run_writers(store, "shared")
        assert errors == []
        total = WRITERS * WRITES_PER_WRITER
        assert len(results) == total

        # every writer saw a distinct predecessor
        previous = [r.previous_revision for r in results]
        assert len(set(previous)) == total
        assert previous.count("") == 1

        report = store.verify("shared")
        assert report.ok
        assert report.length == total
        assert set(report.revisions) == {r.id for r in results}

    def test_bodies_survive(self, memory_backend, policy):
        store = DocumentStore(memory_backend, StoreConfig(id_policy=policy, advance_retries=10000))
        results, _ = run_writers(store, "shared")
        for rev in results[:20]:
            assert store.get_revision("shared", rev.id).read() == rev.body


class TestConcurrentDocuments:
    def test_independent_documents(self, store):
        def writer(doc_id):
            for i in range(20):
                store.put_revision(doc_id, str(i))

        threads = [threading.Thread(target=writer, args=(f"doc-{n}",)) for n in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert [d.id for d in store.list_docs().docs] == [f"doc-{n}" for n in range(6)]
        for n in range(6):
            assert store.verify(f"doc-{n}").length == 20
