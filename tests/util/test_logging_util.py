"""Tests for the shared logging helpers."""

import logging
from dataclasses import replace
from datetime import datetime

from util.logging_util import log_card_review, log_session_end, setup_logger
from vocab_srs.models import Assessment, Card, CardStatus, ReviewSession, SessionQuality, SessionState

NOW = datetime(2026, 3, 10, 9, 0)


class TestSetupLogger:

    def test_handlers_added_once(self):
        logger = setup_logger("tests.logging_util.once")
        setup_logger("tests.logging_util.once")

        assert len(logger.handlers) == 1
        assert logger.level == logging.INFO

    def test_custom_level(self):
        logger = setup_logger("tests.logging_util.debug", level=logging.DEBUG)
        assert logger.level == logging.DEBUG
        assert logger.handlers[0].level == logging.DEBUG


class TestDomainLogging:

    def test_log_card_review(self, caplog):
        before = Card(
            id="srs_k1_abc",
            keyword_id="k1",
            word="hello",
            translation="你好",
            audio_url="",
            next_review_date=datetime(2026, 3, 10),
            created_at=NOW,
        )
        after = replace(before, status=CardStatus.LEARNING, repetitions=1, next_review_date=datetime(2026, 3, 11))
        logger = setup_logger("tests.logging_util.review")

        with caplog.at_level(logging.INFO, logger="tests.logging_util.review"):
            log_card_review(logger, before, after, Assessment.GOOD, 1200)

        assert "srs_k1_abc (hello): good in 1200ms" in caplog.text
        assert "new -> learning" in caplog.text

    def test_log_session_end(self, caplog):
        session = ReviewSession(
            id="srs_session_1",
            user_id="u1",
            start_time=NOW,
            state=SessionState.ENDED,
            cards_reviewed=8,
            target_cards=10,
            accuracy_rate=87.5,
            session_quality=SessionQuality.GOOD,
        )
        logger = setup_logger("tests.logging_util.session")

        with caplog.at_level(logging.INFO, logger="tests.logging_util.session"):
            log_session_end(logger, session, 12)

        assert "srs_session_1 for user u1 (good)" in caplog.text
        assert "Cards: 8/10, accuracy: 87.5%, duration: 12 min" in caplog.text
