"""
Registration and login endpoints
"""

from fastapi import APIRouter, Depends, status

from .dependencies import create_access_token, get_banking_system
from .schemas import LoginRequest, RegisterRequest
from ..logging_config import get_logger, log_action
from ..system import BankingSystem


logger = get_logger("saxon.api.auth")

router = APIRouter()


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(
    request: RegisterRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Open a customer account"""
    account = system.account_manager.register(
        email=request.email,
        password=request.password,
        confirm_password=request.confirm_password,
        name=request.name,
        date_of_birth=request.date_of_birth,
        gender=request.gender,
        country=request.country,
        address_line1=request.address_line1,
        address_line2=request.address_line2,
        city=request.city,
        state=request.state,
        zip_code=request.zip_code,
        ssn=request.ssn,
        referral_code=request.referral_code
    )
    return {
        "account": account.public_dict(),
        "message": "Registration successful! Please login."
    }


@router.post("/login")
def login(
    request: LoginRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Authenticate and return a JWT bearer token"""
    account = system.account_manager.authenticate(request.email, request.password)
    token = create_access_token(system, account)

    log_action(logger, "info", "Token issued", user_id=account.id,
               action="login", resource="auth")

    return {
        **token,
        "account_id": account.id,
        "is_admin": account.is_admin,
        "message": "Login successful"
    }

