import logging
import sys

# Configure logging format
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

def setup_logger(name: str, level=logging.INFO) -> logging.Logger:
    """
    Sets up a logger with consistent formatting.

    Args:
        name: Name of the logger (typically __name__ from the calling module)
        level: Logging level (default: INFO)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Avoid adding handlers multiple times
    if not logger.handlers:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)

        formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)
        console_handler.setFormatter(formatter)

        logger.addHandler(console_handler)

    return logger

def log_card_review(logger: logging.Logger, before, after, assessment, response_time_ms: float):
    """
    Logs a card review and the scheduling change it caused.

    Args:
        logger: Logger instance to use
        before: Card state before the review
        after: Card state after the review
        assessment: How well the learner recalled the card
        response_time_ms: Time taken to answer
    """
    logger.info(f"🔁 Card Reviewed - {after.id} ({after.word}): {assessment.value} "
                f"in {response_time_ms:.0f}ms")
    logger.info(f"  Status: {before.status.value} -> {after.status.value}, "
                f"interval: {before.interval}d -> {after.interval}d")
    logger.debug(f"  Ease factor: {before.ease_factor:.2f} -> {after.ease_factor:.2f}, "
                 f"repetitions: {after.repetitions}")
    logger.debug(f"  Next review: {after.next_review_date.date().isoformat()}")

def log_session_end(logger: logging.Logger, session, duration_minutes: int):
    """
    Logs the outcome of a finished review session.

    Args:
        logger: Logger instance to use
        session: The ended session
        duration_minutes: Session length in whole minutes
    """
    quality = session.session_quality.value if session.session_quality else "ungraded"
    logger.info(f"🏁 Session Ended - {session.id} for user {session.user_id} ({quality})")
    logger.info(f"  Cards: {session.cards_reviewed}/{session.target_cards}, "
                f"accuracy: {session.accuracy_rate:.1f}%, duration: {duration_minutes} min")
