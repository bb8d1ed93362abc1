from fastapi import APIRouter, Depends, status
from typing import List, Optional

from kioku.core.logging import get_logger
from kioku.dependencies import get_user_service
from kioku.schemas.user_schema import UserCreate, UserUpdate, UserResponse, LoginRequest
from kioku.services.user_service import UserService

logger = get_logger(__name__)
router = APIRouter()


@router.post("/", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(user_data: UserCreate, user_service: UserService = Depends(get_user_service)):
    """Create a local profile, optionally password protected"""
    return await user_service.create_user(user_data)


@router.get("/", response_model=List[UserResponse])
async def list_users(user_service: UserService = Depends(get_user_service)):
    return await user_service.list_users()


@router.get("/active", response_model=Optional[UserResponse])
async def get_active_user(user_service: UserService = Depends(get_user_service)):
    return await user_service.get_active_user()


@router.post("/login", response_model=UserResponse)
async def login(login_data: LoginRequest, user_service: UserService = Depends(get_user_service)):
    return await user_service.login(login_data.user_id, login_data.password)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(user_service: UserService = Depends(get_user_service)):
    await user_service.logout()


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: str, user_service: UserService = Depends(get_user_service)):
    return await user_service.get_user(user_id)


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(user_id: str, user_data: UserUpdate, user_service: UserService = Depends(get_user_service)):
    return await user_service.update_user(user_id, user_data)


@router.delete("/{user_id}/password", response_model=UserResponse)
async def remove_password(user_id: str, user_service: UserService = Depends(get_user_service)):
    return await user_service.remove_password(user_id)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(user_id: str, user_service: UserService = Depends(get_user_service)):
    """Delete a profile together with its decks and quizzes"""
    await user_service.delete_user(user_id)
