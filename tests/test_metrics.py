from __future__ import annotations

import time

from dexmirror.metrics import (
    metrics_snapshot,
    record_backfill_failures,
    record_cache_access,
    record_rate_limit_rejection,
    record_upstream_error,
    reset_metrics_for_tests,
)


def test_metrics_snapshot_counts_and_rates():
    reset_metrics_for_tests()
    record_cache_access(True)
    record_cache_access(True)
    record_cache_access(False)
    record_backfill_failures(2)
    record_rate_limit_rejection("seed")
    record_rate_limit_rejection("seed")
    record_rate_limit_rejection("search")
    record_upstream_error(time.time() - 4000)  # pruned from 1h window
    record_upstream_error(time.time())

    snap = metrics_snapshot()
    assert snap["cache_hit_rate"] == 0.6667
    assert snap["backfill_failures"] == 2
    assert snap["rate_limit_rejections"] == {"seed": 2, "search": 1}
    assert snap["upstream_errors_last_hour"] == 1


def test_empty_snapshot():
    reset_metrics_for_tests()
    snap = metrics_snapshot()
    assert snap["cache_hit_rate"] == 0.0
    assert snap["rate_limit_rejections"] == {}
