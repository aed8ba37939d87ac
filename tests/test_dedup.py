import logging

import pytest

from uk_tender_loader.connectors.supabase_rest import StoreReadError
from uk_tender_loader.pipeline.dedup import DedupKeyIndex, identity_key


class FakeStore:
    def __init__(self, rows, fail_at_offset=None):
        self.rows = rows
        self.fail_at_offset = fail_at_offset
        self.calls = []

    def fetch_identity_rows(self, offset, limit):
        self.calls.append((offset, limit))
        if self.fail_at_offset is not None and offset >= self.fail_at_offset:
            raise StoreReadError(500, "boom")
        return self.rows[offset : offset + limit]


def _rows(n):
    return [{"title": f"Tender {i}", "buyer_name": f"Buyer {i}"} for i in range(n)]


def test_identity_key_joins_title_and_buyer():
    assert identity_key("Roof repairs", "Bristol City Council") == "Roof repairs|||Bristol City Council"


def test_load_pages_until_short_page():
    store = FakeStore(_rows(5))
    index = DedupKeyIndex.load(store, page_size=2)
    assert len(index) == 5
    assert store.calls == [(0, 2), (2, 2), (4, 2)]
    assert index.contains(identity_key("Tender 4", "Buyer 4"))


def test_load_stops_on_empty_page():
    store = FakeStore(_rows(4))
    index = DedupKeyIndex.load(store, page_size=2)
    assert len(index) == 4
    assert store.calls == [(0, 2), (2, 2), (4, 2)]


def test_load_skips_rows_without_identity():
    rows = [
        {"title": "A", "buyer_name": "X"},
        {"title": "", "buyer_name": "X"},
        {"title": "B", "buyer_name": None},
        {"buyer_name": "Y"},
    ]
    index = DedupKeyIndex.load(FakeStore(rows), page_size=10)
    assert len(index) == 1
    assert "A|||X" in index


def test_read_failure_on_first_page_gives_empty_index(caplog):
    store = FakeStore(_rows(3), fail_at_offset=0)
    with caplog.at_level(logging.WARNING):
        index = DedupKeyIndex.load(store, page_size=2)
    assert len(index) == 0
    assert "Could not read existing tenders" in caplog.text


def test_read_failure_mid_load_keeps_partial_keys():
    store = FakeStore(_rows(5), fail_at_offset=2)
    index = DedupKeyIndex.load(store, page_size=2)
    assert len(index) == 2


def test_read_failure_propagates_when_aborting():
    store = FakeStore(_rows(3), fail_at_offset=0)
    with pytest.raises(StoreReadError):
        DedupKeyIndex.load(store, page_size=2, on_error="abort")


def test_load_ignores_non_dict_rows():
    rows = [{"title": "A", "buyer_name": "X"}, "A|||X", None, ["B", "Y"]]
    index = DedupKeyIndex.load(FakeStore(rows), page_size=10)
    assert len(index) == 1
    assert "A|||X" in index
