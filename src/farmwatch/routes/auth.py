from fastapi import APIRouter, Depends, HTTPException, status

from livesync.errors import AuthorizationError
from livesync.identity import User

from ..deps import get_current_user, get_identity, get_token
from ..identity import LocalIdentityProvider
from ..schemas import LoginIn, SignupIn, TokenOut

# Sign-up, sign-in and session management.
# Prefix: /api/auth
router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/signup", response_model=TokenOut, status_code=status.HTTP_201_CREATED)
def signup(payload: SignupIn, identity: LocalIdentityProvider = Depends(get_identity)):
    """
    Create an account and sign it in.

    The first account on a fresh install becomes the admin.
    """
    identity.create_user(payload.email, payload.password, payload.full_name, team=payload.team)
    user, token = identity.login(payload.email, payload.password)
    return TokenOut(access_token=token, user=user)


@router.post("/login", response_model=TokenOut)
def login(payload: LoginIn, identity: LocalIdentityProvider = Depends(get_identity)):
    try:
        user, token = identity.login(payload.email, payload.password)
    except AuthorizationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        ) from e
    return TokenOut(access_token=token, user=user)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
    token: str = Depends(get_token),
    user: User = Depends(get_current_user),
    identity: LocalIdentityProvider = Depends(get_identity),
):
    identity.logout(token)


@router.get("/me", response_model=User)
def me(user: User = Depends(get_current_user)):
    return user
