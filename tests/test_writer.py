import logging

from uk_tender_loader.connectors.supabase_rest import StoreWriteResult
from uk_tender_loader.pipeline.writer import BatchWriter


class FakeStore:
    def __init__(self, result):
        self.result = result
        self.batches = []

    def insert_tenders(self, records):
        self.batches.append(list(records))
        return self.result


def test_successful_batch_is_sent_whole():
    store = FakeStore(StoreWriteResult(ok=True, status_code=201))
    assert BatchWriter(store).write([{"title": "A"}, {"title": "B"}]) is True
    assert store.batches == [[{"title": "A"}, {"title": "B"}]]


def test_failed_batch_logs_body_and_is_not_retried(caplog):
    store = FakeStore(StoreWriteResult(ok=False, status_code=409, error="duplicate key"))
    with caplog.at_level(logging.ERROR):
        assert BatchWriter(store).write([{"title": "A"}]) is False
    assert len(store.batches) == 1
    assert "duplicate key" in caplog.text


def test_empty_batch_makes_no_request():
    store = FakeStore(StoreWriteResult(ok=True))
    assert BatchWriter(store).write([]) is True
    assert store.batches == []


def test_dry_run_makes_no_request():
    store = FakeStore(StoreWriteResult(ok=False))
    assert BatchWriter(store, dry_run=True).write([{"title": "A"}]) is True
    assert store.batches == []
