from vread.models.book import Book, ReadingQuestion
from vread.models.companion import Companion
from vread.models.gamification import UserBadge, UserLevel, UserQuest
from vread.models.reading import ReadingProgress, ReadingValidation

__all__ = [
    "Book",
    "Companion",
    "ReadingProgress",
    "ReadingQuestion",
    "ReadingValidation",
    "UserBadge",
    "UserLevel",
    "UserQuest",
]
