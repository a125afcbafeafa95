from __future__ import annotations

from paybot.db.models import LedgerTransaction


class TransactionService:
    def __init__(self, db_factory) -> None:
        self.db_factory = db_factory

    async def record_transaction(
        self,
        *,
        sender: str,
        receiver: str | None,
        tx_id: str,
        kind: str,
        amount: str | None = None,
        unit: str | None = None,
        memo: str | None = None,
        status: str = "completed",
    ) -> None:
        async with self.db_factory() as session:
            row = LedgerTransaction(
                tx_id=tx_id,
                sender=sender,
                receiver=receiver,
                kind=kind,
                amount=amount,
                unit=unit,
                memo=memo,
                status=status,
            )
            session.add(row)
            await session.commit()
