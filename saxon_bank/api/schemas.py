"""
Pydantic schemas for API requests
"""

from decimal import Decimal
from typing import List, Optional, Union
from pydantic import BaseModel, Field


# Amounts arrive as strings or JSON numbers; the core validates them
Amount = Union[str, Decimal]


# Auth schemas
class RegisterRequest(BaseModel):
    email: str
    password: str
    confirm_password: Optional[str] = None
    name: str
    date_of_birth: str = Field(..., description="ISO date, e.g. 1990-04-21")
    gender: Optional[str] = None
    country: str
    address_line1: Optional[str] = None
    address_line2: str = ""
    city: Optional[str] = None
    state: str = ""
    zip_code: Optional[str] = None
    ssn: Optional[str] = None
    referral_code: Optional[str] = None


class LoginRequest(BaseModel):
    email: str
    password: str


# Profile schemas
class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    date_of_birth: Optional[str] = Field(None, description="ISO date, e.g. 1990-04-21")
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None


class SettingsUpdateRequest(BaseModel):
    email_notifications: Optional[bool] = None
    sms_notifications: Optional[bool] = None
    push_notifications: Optional[bool] = None
    login_alerts: Optional[bool] = None
    dark_mode: Optional[bool] = None


# Ledger schemas
class DepositRequest(BaseModel):
    amount: Amount = Field(..., description="Decimal amount as string")
    description: Optional[str] = None


class WithdrawRequest(BaseModel):
    amount: Amount = Field(..., description="Decimal amount as string")
    description: Optional[str] = None


class TransferRequest(BaseModel):
    to_account: str = Field(..., description="Recipient account number")
    amount: Amount = Field(..., description="Decimal amount as string")
    description: Optional[str] = None


class PayBillRequest(BaseModel):
    biller_id: str
    amount: Amount = Field(..., description="Decimal amount as string")
    description: Optional[str] = None


class BalanceAdjustmentRequest(BaseModel):
    action: str = Field(..., description="add or deduct")
    amount: Amount = Field(..., description="Decimal amount as string")
    reason: Optional[str] = None


# Approval schemas
class LoanApplicationRequest(BaseModel):
    loan_type: str
    amount: Amount = Field(..., description="Decimal amount as string")
    term: int = Field(..., description="Term in years")
    purpose: str = ""


class KycDocumentModel(BaseModel):
    type: str = Field(..., description="id, address or selfie")
    url: str
    filename: Optional[str] = None


class KycSubmitRequest(BaseModel):
    documents: List[KycDocumentModel]


class DecisionRequest(BaseModel):
    notes: Optional[str] = None


# Biller schemas
class AddBillerRequest(BaseModel):
    name: str
    category: str
    account_number: str
    description: str = ""
