from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_db
from ..models import User
from ..schemas import PasswordUpdateRequest, UserOut, UserUpdateRequest, dump, dump_many
from ..security import get_current_user, hash_password, verify_password

router = APIRouter(prefix="/api/user", tags=["Users"], dependencies=[Depends(get_current_user)])


def _require_self_or_admin(user: dict, user_id: int, action: str):
    if user.get("id") != user_id and user.get("role") != "admin":
        raise HTTPException(status_code=403, detail=f"You are not able to {action} this user.")


async def _get_user(db: AsyncSession, user_id: int) -> User:
    account = await db.get(User, user_id)
    if not account:
        raise HTTPException(status_code=404, detail="User not found.")
    return account


@router.get("/current-user")
async def current_user(user=Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    account = await _get_user(db, user["id"])
    return {"success": True, "user": dump(UserOut, account)}


@router.get("/by-userid/{user_id}")
async def get_user_by_id(user_id: int, db: AsyncSession = Depends(get_db)):
    account = await _get_user(db, user_id)
    return {"success": True, "user": dump(UserOut, account)}


@router.get("/users/by-role")
async def get_users_by_role(role: str = Query(...), db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(User).where(User.role == role).order_by(User.id))
    return {"success": True, "users": dump_many(UserOut, result.scalars().all())}


@router.get("/all-users")
async def get_all_users(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(User).order_by(User.id))
    return {"success": True, "users": dump_many(UserOut, result.scalars().all())}


@router.delete("/{user_id}")
async def delete_user(user_id: int, user=Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    if user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="You are not able to delete.")

    account = await _get_user(db, user_id)
    await db.delete(account)
    await db.commit()

    return {"success": True, "message": "User deleted successfully."}


@router.put("/{user_id}")
async def update_user(
    user_id: int,
    data: UserUpdateRequest,
    user=Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    _require_self_or_admin(user, user_id, "update")
    account = await _get_user(db, user_id)

    changes = data.update.model_dump(exclude_unset=True, exclude={"role", "tax_number"})
    for field, value in changes.items():
        setattr(account, field, value)

    # the only role change a profile update may carry is becoming an agent
    if data.update.role == "agent":
        tax_number = data.update.tax_number or account.tax_number
        if not tax_number:
            raise HTTPException(status_code=400, detail="Tax number is required for agents.")
        account.role = "agent"
        account.tax_number = tax_number

    await db.commit()
    return {"success": True, "message": "User Info Update"}


@router.patch("/update-password/{user_id}")
async def update_password(
    user_id: int,
    data: PasswordUpdateRequest,
    user=Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    _require_self_or_admin(user, user_id, "update")
    account = await _get_user(db, user_id)

    if not account.password:
        raise HTTPException(status_code=400, detail="This account signs in with Google and has no password.")

    if not verify_password(data.update.old_password, account.password):
        raise HTTPException(status_code=401, detail="Wrong password")

    account.password = hash_password(data.update.new_password)
    await db.commit()
    return {"success": True, "message": "Password Changed"}
