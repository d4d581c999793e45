"""
Exceptions du core Feedback
"""
import logging

logger = logging.getLogger(__name__)


class FeedbackError(Exception):
    """Base exception for Feedback"""
    def __init__(self, message: str, code: str = "FEEDBACK_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)

    def to_dict(self):
        return {
            "error": True,
            "code": self.code,
            "message": self.message
        }


class AwardConfigError(FeedbackError):
    """Awards.json absent ou invalide : installation cassée, fatal au démarrage"""
    def __init__(self, message: str):
        super().__init__(message, code="AWARD_CONFIG_ERROR")
        logger.critical(f"Award configuration error: {message}")


class QueryError(FeedbackError):
    """Lecture en échec (seulement en mode strict)"""
    def __init__(self, message: str):
        super().__init__(message, code="QUERY_ERROR")


class TagLimitReached(FeedbackError):
    def __init__(self, limit: int):
        super().__init__(f"Free version is limited to {limit} tags", code="TAG_LIMIT_REACHED")
        self.limit = limit


class TransactionError(FeedbackError):
    """Achat non vérifié ou déjà finalisé"""
    def __init__(self, message: str):
        super().__init__(message, code="TRANSACTION_ERROR")
