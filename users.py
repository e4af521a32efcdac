"""
User service: registration, login, profile, favorites and admin user management.
"""
from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr, Field
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from auth import (
    admin_required,
    create_access_token,
    get_current_user,
    hash_password,
    public_user,
    verify_password,
)
from database import create_document, find_by_id, get_db, get_documents, now, to_obj_id
from errors import DuplicateEmail, InvalidCredentials, NotFound, Unauthenticated
from schemas import Role, User as UserSchema

logger = structlog.get_logger(__name__)

auth_router = APIRouter(prefix="/api/auth", tags=["auth"])
users_router = APIRouter(prefix="/api/users", tags=["users"])

USER_NOT_FOUND = "Utilisateur non trouvé"


# Request/Response Models
class RegisterRequest(BaseModel):
    firstName: str = Field(..., min_length=1)
    lastName: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=1)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class AuthResponse(BaseModel):
    id: str
    firstName: str
    lastName: str
    email: str
    role: str
    token: str


class AddressUpdate(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    postalCode: Optional[str] = None


class ProfileUpdate(BaseModel):
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[AddressUpdate] = None


class AdminUserUpdate(ProfileUpdate):
    role: Optional[Role] = None


class FavoritesResponse(BaseModel):
    message: str
    favorites: List[str]


def _auth_response(user: Dict[str, Any]) -> AuthResponse:
    uid = str(user["_id"])
    return AuthResponse(
        id=uid,
        firstName=user["firstName"],
        lastName=user["lastName"],
        email=user["email"],
        role=user.get("role", "customer"),
        token=create_access_token(uid),
    )


def _apply_update(db: Database, user_id: str, payload: ProfileUpdate) -> Optional[Dict[str, Any]]:
    """Set every supplied field; empty or omitted fields keep their stored value.

    Returns None when the user no longer exists.
    """
    oid = to_obj_id(user_id)
    changes = {k: v for k, v in payload.model_dump(exclude={"address"}).items() if v}
    if payload.address is not None:
        for key, value in payload.address.model_dump().items():
            if value:
                changes[f"address.{key}"] = value

    if "email" in changes:
        taken = db["user"].find_one({"email": changes["email"], "_id": {"$ne": oid}})
        if taken:
            raise DuplicateEmail()

    if not changes:
        user = db["user"].find_one({"_id": oid})
        return public_user(user) if user else None

    changes["updatedAt"] = now()
    try:
        user = db["user"].find_one_and_update(
            {"_id": oid}, {"$set": changes}, return_document=ReturnDocument.AFTER
        )
    except DuplicateKeyError:
        raise DuplicateEmail()
    return public_user(user) if user else None


def _update_favorites(db: Database, user_id: str, update: Dict[str, Any]) -> List[str]:
    user = db["user"].find_one_and_update(
        {"_id": to_obj_id(user_id)}, update, projection={"favorites": 1}, return_document=ReturnDocument.AFTER
    )
    if user is None:
        # Deleted after the token was resolved.
        raise Unauthenticated("Token invalide")
    return user.get("favorites", [])


# Auth Routes
@auth_router.post("/register", response_model=AuthResponse, status_code=201)
def register(payload: RegisterRequest, db: Database = Depends(get_db)):
    if db["user"].find_one({"email": payload.email}):
        raise DuplicateEmail()
    user_doc = UserSchema(
        firstName=payload.firstName,
        lastName=payload.lastName,
        email=payload.email,
        password_hash=hash_password(payload.password),
    )
    try:
        uid = create_document(db, "user", user_doc)
    except DuplicateKeyError:
        raise DuplicateEmail()
    logger.info("user_registered", user_id=uid)
    return _auth_response(find_by_id(db, "user", uid))


@auth_router.post("/login", response_model=AuthResponse)
def login(payload: LoginRequest, db: Database = Depends(get_db)):
    user = db["user"].find_one({"email": payload.email})
    if not user or not verify_password(payload.password, user.get("password_hash", "")):
        logger.info("login_failed")
        raise InvalidCredentials()
    logger.info("login_succeeded", user_id=str(user["_id"]))
    return _auth_response(user)


@auth_router.get("/profile")
def get_profile(current_user=Depends(get_current_user)):
    return current_user


@auth_router.put("/profile")
def update_profile(payload: ProfileUpdate, current_user=Depends(get_current_user), db: Database = Depends(get_db)):
    updated = _apply_update(db, current_user["id"], payload)
    if updated is None:
        raise Unauthenticated("Token invalide")
    return updated


@auth_router.post("/favorites/{product_id}", response_model=FavoritesResponse)
def add_favorite(product_id: str, current_user=Depends(get_current_user), db: Database = Depends(get_db)):
    favorites = _update_favorites(db, current_user["id"], {"$addToSet": {"favorites": product_id}})
    return FavoritesResponse(message="Produit ajouté aux favoris", favorites=favorites)


@auth_router.delete("/favorites/{product_id}", response_model=FavoritesResponse)
def remove_favorite(product_id: str, current_user=Depends(get_current_user), db: Database = Depends(get_db)):
    favorites = _update_favorites(db, current_user["id"], {"$pull": {"favorites": product_id}})
    return FavoritesResponse(message="Produit supprimé des favoris", favorites=favorites)


# Admin Routes
@users_router.get("")
def list_users(admin=Depends(admin_required), db: Database = Depends(get_db)):
    users = get_documents(db, "user")
    for u in users:
        u.pop("password_hash", None)
    return users


@users_router.get("/{user_id}")
def get_user(user_id: str, admin=Depends(admin_required), db: Database = Depends(get_db)):
    user = find_by_id(db, "user", user_id)
    if not user:
        raise NotFound(USER_NOT_FOUND)
    return public_user(user)


@users_router.put("/{user_id}")
def update_user(user_id: str, payload: AdminUserUpdate, admin=Depends(admin_required), db: Database = Depends(get_db)):
    updated = _apply_update(db, user_id, payload) if find_by_id(db, "user", user_id) else None
    if updated is None:
        raise NotFound(USER_NOT_FOUND)
    logger.info("user_updated", user_id=user_id, by=admin["id"], role=updated.get("role"))
    return updated


@users_router.delete("/{user_id}")
def delete_user(user_id: str, admin=Depends(admin_required), db: Database = Depends(get_db)):
    user = find_by_id(db, "user", user_id)
    if not user:
        raise NotFound(USER_NOT_FOUND)
    db["user"].delete_one({"_id": user["_id"]})
    logger.info("user_deleted", user_id=user_id, by=admin["id"])
    return {"message": "Utilisateur supprimé"}
