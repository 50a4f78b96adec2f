from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_db
from ..models import Transaction, User
from ..schemas import TransactionOut, dump_many
from ..security import get_current_user

router = APIRouter(prefix="/api/transactions", tags=["Transactions"], dependencies=[Depends(get_current_user)])


@router.get("")
async def list_transactions(db: AsyncSession = Depends(get_db)):
    res = await db.execute(select(Transaction).order_by(Transaction.id))
    return {"success": True, "transactions": dump_many(TransactionOut, res.scalars().all())}


@router.get("/{user_id}")
async def transactions_by_role(user_id: int, db: AsyncSession = Depends(get_db)):
    account = await db.get(User, user_id)
    if not account:
        raise HTTPException(status_code=404, detail="User not found.")

    if account.role == "user":
        column = Transaction.user_id
    elif account.role == "agent":
        column = Transaction.agent_id
    else:
        raise HTTPException(status_code=404, detail="No transactions found.")

    res = await db.execute(select(Transaction).where(column == user_id).order_by(Transaction.id))
    transactions = res.scalars().all()
    if not transactions:
        raise HTTPException(status_code=404, detail="No transactions found.")

    return {"success": True, "transactions": dump_many(TransactionOut, transactions)}
