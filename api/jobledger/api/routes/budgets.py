from fastapi import APIRouter, Depends

from jobledger.core.security import require_admin_api_key
from jobledger.schemas.budgets import BudgetOut, LedgerStatementOut
from jobledger.services.repository import get_repository

router = APIRouter()


@router.get("/get-budget/{user_id}", response_model=BudgetOut)
async def get_budget(user_id: str, repository=Depends(get_repository)) -> BudgetOut:
    return BudgetOut(**await repository.get_budget(user_id))


@router.get(
    "/admin/ledger/{user_id}",
    response_model=LedgerStatementOut,
    dependencies=[Depends(require_admin_api_key)],
)
async def get_ledger_statement(user_id: str, repository=Depends(get_repository)) -> LedgerStatementOut:
    return LedgerStatementOut(**await repository.get_ledger_statement(user_id))
