from __future__ import annotations

import logging

from campus_router.logging_utils import bind_request, get_logger, log_event, log_warning, reset_request


class _Collect(logging.Handler):
    def __init__(self) -> None:
        super().__init__()
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


def test_bound_request_fields_are_stamped_until_reset() -> None:
    handler = _Collect()
    logger = get_logger()
    logger.addHandler(handler)
    try:
        token = bind_request("req-1", requested_profile="eco")
        try:
            log_warning("route_snap_failed", endpoint="start")
            log_event("route_request", requested_profile="wheelchair")
        finally:
            reset_request(token)
        log_event("campus_graph_loaded")
    finally:
        logger.removeHandler(handler)

    snap, request, loaded = handler.records
    assert snap.levelno == logging.WARNING
    assert snap.request_id == "req-1"
    assert snap.requested_profile == "eco"
    # Explicit fields win over the bound ones.
    assert request.requested_profile == "wheelchair"
    assert request.request_id == "req-1"
    assert not hasattr(loaded, "request_id")


def test_reset_request_accepts_none() -> None:
    reset_request(None)
