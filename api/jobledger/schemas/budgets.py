from pydantic import BaseModel, Field


class BudgetOut(BaseModel):
    spent_cents: int
    earned_cents: int


class LedgerEntryOut(BaseModel):
    id: str
    job_id: str
    from_user: str
    to_user: str
    amount_cents: int
    created_at: int


class LedgerStatementOut(BaseModel):
    user_id: str
    entries: list[LedgerEntryOut] = Field(default_factory=list)
    sent_cents: int
    received_cents: int
    starting_earned_cents: int
    budget: BudgetOut
    reconciled: bool
