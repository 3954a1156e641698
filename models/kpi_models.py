from pydantic import BaseModel
from enum import Enum

class KpiCounter(str, Enum):
    TOTAL_BOOKS_BORROWED = "totalBooksBorrowed"
    TOTAL_GIVEAWAYS = "totalGiveaways"

class KpiSummary(BaseModel):
    totalBooksOnPlatform: int = 0
    totalBooksBorrowed: int = 0
    totalGiveaways: int = 0
    totalBorrowsAndGiveaways: int = 0
