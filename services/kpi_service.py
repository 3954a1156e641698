from models.book_models import BorrowRequestStatus
from models.kpi_models import KpiCounter, KpiSummary


class KpiCounters:
    """Platform counters, one document per counter name.

    Increments are a single upserting `$inc`, so concurrent transitions
    never lose a count.
    """

    def __init__(self, database):
        self.db = database

    async def increment(self, name: KpiCounter, amount: int = 1) -> None:
        await self.db.kpi_counters.update_one(
            {"_id": KpiCounter(name).value},
            {"$inc": {"value": amount}},
            upsert=True,
        )

    async def get(self, name: KpiCounter) -> int:
        counter = await self.db.kpi_counters.find_one({"_id": KpiCounter(name).value})
        return counter.get("value", 0) if counter else 0

    async def summary(self) -> KpiSummary:
        borrowed = await self.get(KpiCounter.TOTAL_BOOKS_BORROWED)
        giveaways = await self.get(KpiCounter.TOTAL_GIVEAWAYS)
        # Books given away have left the platform
        on_platform = await self.db.books.count_documents(
            {"borrowRequestStatus": {"$ne": BorrowRequestStatus.GIVEAWAY_COMPLETED.value}}
        )
        return KpiSummary(
            totalBooksOnPlatform=on_platform,
            totalBooksBorrowed=borrowed,
            totalGiveaways=giveaways,
            totalBorrowsAndGiveaways=borrowed + giveaways,
        )
