"""Tests for the structlog setup."""

import logging

import structlog

from vulnfeed.core.logging import get_logger, source_context


def test_source_context_binds_and_unbinds():
    with source_context("npm", batch_id="b-1"):
        bound = structlog.contextvars.get_contextvars()
        assert bound["source"] == "npm"
        assert bound["batch_id"] == "b-1"
    assert "source" not in structlog.contextvars.get_contextvars()


def test_http_client_loggers_are_quieted():
    get_logger(__name__)
    assert logging.getLogger("httpx").level >= logging.WARNING
