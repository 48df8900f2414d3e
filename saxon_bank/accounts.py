"""
Account Management Module

Customer accounts: identity, profile, verification flags, card state and
balance. Balances are only changed through the ledger and the approval
workflows; this module owns registration, lookup, login, admin role changes,
profile and preference edits, and the per-account locks that serialize balance
updates.
"""

from decimal import Decimal
from datetime import datetime, date, timezone
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union
import hashlib
import random
import re
import secrets
import uuid

from .storage import StorageInterface, StorageRecord, parse_datetime
from .audit import AuditTrail, AuditEventType
from .config import SaxonConfig, get_config
from .context import RequestContext
from .errors import (
    AuthenticationError, DuplicateRequest, NotFound, PermissionDenied, RegistrationError,
    ValidationError
)
from .locking import KeyedLocks
from .logging_config import get_logger, log_action
from .money import ZERO, to_decimal


logger = get_logger("saxon.accounts")

DECIMAL_FIELDS = ('balance', 'referral_earnings', 'daily_limit', 'weekly_limit', 'monthly_limit')

# Customer-editable fields
PROFILE_FIELDS = ('name', 'phone', 'date_of_birth', 'address_line1', 'address_line2',
                  'city', 'state', 'zip_code')
REQUIRED_PROFILE_FIELDS = ('name', 'date_of_birth', 'address_line1', 'city', 'zip_code')
SETTINGS_FIELDS = ('email_notifications', 'sms_notifications', 'push_notifications',
                   'login_alerts', 'dark_mode')


@dataclass
class Account(StorageRecord):
    """
    Customer account. ``balance`` never goes negative.
    """
    account_number: str
    name: str
    email: str
    password_hash: str
    password_salt: str
    balance: Decimal = ZERO
    is_admin: bool = False

    # Profile
    date_of_birth: Optional[str] = None  # ISO date
    gender: Optional[str] = None
    country: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: str = ""
    city: Optional[str] = None
    state: str = ""
    zip_code: Optional[str] = None
    ssn: Optional[str] = None  # United States only
    phone: Optional[str] = None

    # Preferences
    email_notifications: bool = True
    sms_notifications: bool = False
    push_notifications: bool = True
    login_alerts: bool = True
    dark_mode: bool = False

    # Verification
    is_verified: bool = False
    kyc_pending: bool = False
    kyc_progress: int = 0
    id_verified: bool = False
    address_verified: bool = False
    selfie_verified: bool = False

    # Card
    has_card: bool = False
    card_requested: bool = False
    card_number: Optional[str] = None
    card_expiry: Optional[str] = None  # MM/YY
    card_cvv: Optional[str] = None

    # Referrals
    referral_code: Optional[str] = None
    referred_by: Optional[str] = None
    referral_earnings: Decimal = ZERO
    referrals: List[str] = field(default_factory=list)

    # Informational limits
    daily_limit: Decimal = Decimal('5000.00')
    weekly_limit: Decimal = Decimal('25000.00')
    monthly_limit: Decimal = Decimal('100000.00')

    last_login: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Dict) -> 'Account':
        data = dict(data)
        for key in DECIMAL_FIELDS:
            if key in data and data[key] is not None:
                data[key] = to_decimal(data[key])
        data['last_login'] = parse_datetime(data.get('last_login'))
        return super().from_dict(data)

    def public_dict(self) -> Dict:
        """Account view without credentials or full card secrets"""
        result = self.to_dict()
        for secret in ('password_hash', 'password_salt', 'card_cvv', 'ssn'):
            result.pop(secret, None)
        if self.card_number:
            result['card_number'] = "**** **** **** " + self.card_number[-4:]
        return result


def calculate_age(birth_date: date, today: Optional[date] = None) -> int:
    """Whole years between birth_date and today"""
    today = today or datetime.now(timezone.utc).date()
    age = today.year - birth_date.year
    if (today.month, today.day) < (birth_date.month, birth_date.day):
        age -= 1
    return age


class AccountManager:
    """
    Manages account registration, lookup, authentication and admin roles
    """

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: AuditTrail,
        config: Optional[SaxonConfig] = None,
        referral_program=None
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.config = config or get_config()
        self.accounts_table = "accounts"
        self.locks = KeyedLocks()
        # Wired by BankingSystem; registration records referrals through it
        self.referral_program = referral_program

    # Password hashing

    def _generate_salt(self) -> str:
        return secrets.token_hex(16)

    def _hash_password(self, password: str, salt: str) -> str:
        return hashlib.scrypt(
            password.encode(),
            salt=salt.encode(),
            n=16384, r=8, p=1
        ).hex()

    def _verify_password(self, account: Account, password: str) -> bool:
        expected = self._hash_password(password, account.password_salt)
        return secrets.compare_digest(expected, account.password_hash)

    # Identifier generation

    def _generate_account_number(self) -> str:
        """Random unique 10-digit account number"""
        while True:
            number = str(random.randint(1000000000, 9999999999))
            if not self.storage.find(self.accounts_table, {"account_number": number}):
                return number

    def _generate_referral_code(self, name: str) -> str:
        """First three letters of the name upper-cased plus four digits"""
        prefix = re.sub(r'[^A-Za-z]', '', name)[:3].upper().ljust(3, 'X')
        while True:
            code = f"{prefix}{random.randint(1000, 9999)}"
            if not self.storage.find(self.accounts_table, {"referral_code": code}):
                return code

    # Registration

    def _validate_registration(
        self,
        email: str,
        password: str,
        confirm_password: Optional[str],
        name: str,
        date_of_birth: Union[str, date],
        country: str,
        address_line1: Optional[str],
        city: Optional[str],
        zip_code: Optional[str]
    ) -> date:
        if not name or not name.strip():
            raise RegistrationError("Name is required")
        if not email or "@" not in email:
            raise RegistrationError("A valid email address is required")
        if confirm_password is not None and password != confirm_password:
            raise RegistrationError("Passwords do not match")
        if not password or len(password) < self.config.password_min_length:
            raise RegistrationError(
                f"Password must be at least {self.config.password_min_length} characters"
            )

        if isinstance(date_of_birth, str):
            try:
                birth_date = date.fromisoformat(date_of_birth)
            except ValueError:
                raise RegistrationError("Invalid date of birth")
        else:
            birth_date = date_of_birth

        if calculate_age(birth_date) < self.config.minimum_age:
            raise RegistrationError(f"You must be at least {self.config.minimum_age} years old")

        if country not in self.config.country_list:
            raise RegistrationError(
                "Registration is only available to residents of the "
                + " or ".join(self.config.country_list)
            )

        if not address_line1 or not city or not zip_code:
            raise RegistrationError("Please fill in all required address fields")

        if self.get_account_by_email(email):
            raise DuplicateRequest("Email already registered")

        return birth_date

    def register(
        self,
        email: str,
        password: str,
        name: str,
        date_of_birth: Union[str, date],
        country: str,
        address_line1: Optional[str],
        city: Optional[str],
        zip_code: Optional[str],
        address_line2: str = "",
        state: str = "",
        gender: Optional[str] = None,
        ssn: Optional[str] = None,
        referral_code: Optional[str] = None,
        confirm_password: Optional[str] = None,
        is_admin: bool = False
    ) -> Account:
        """
        Register a new customer account.

        Args:
            email: Unique login email (case-insensitive)
            password: Plain password, stored as a salted scrypt hash
            name: Full name, also seeds the referral code
            date_of_birth: ISO date string or date; must be of age
            country: One of the supported countries
            address_line1, city, zip_code: Required address fields
            ssn: Kept only for United States residents
            referral_code: Optional code of the referring account; unknown
                codes are ignored
            confirm_password: When given, must equal password

        Returns:
            Created Account object

        Raises:
            RegistrationError: Eligibility or required-field failure
            DuplicateRequest: Email already registered
        """
        email = email.strip().lower() if email else email
        birth_date = self._validate_registration(
            email, password, confirm_password, name, date_of_birth,
            country, address_line1, city, zip_code
        )

        now = datetime.now(timezone.utc)
        salt = self._generate_salt()
        referral = None
        referrer = None
        if referral_code and self.referral_program:
            referrer = self.get_account_by_referral_code(referral_code.strip())

        with self.locks.hold(f"email:{email}", referrer.id if referrer else None), self.storage.atomic():
            if self.get_account_by_email(email):
                raise DuplicateRequest("Email already registered")

            account = Account(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                account_number=self._generate_account_number(),
                name=name.strip(),
                email=email,
                password_hash=self._hash_password(password, salt),
                password_salt=salt,
                is_admin=is_admin,
                date_of_birth=birth_date.isoformat(),
                gender=gender,
                country=country,
                address_line1=address_line1,
                address_line2=address_line2 or "",
                city=city,
                state=state or "",
                zip_code=zip_code,
                referred_by=referrer.id if referrer else None,
                ssn=ssn if country == "United States" and ssn else None,
                referral_code=self._generate_referral_code(name),
                daily_limit=to_decimal(self.config.default_daily_limit),
                weekly_limit=to_decimal(self.config.default_weekly_limit),
                monthly_limit=to_decimal(self.config.default_monthly_limit)
            )
            self._save_account(account)

            self.audit_trail.log_event(
                event_type=AuditEventType.ACCOUNT_REGISTERED,
                entity_type="account",
                entity_id=account.id,
                metadata={
                    "account_number": account.account_number,
                    "country": country,
                    "referral_code_used": referral_code or None
                }
            )

            if referrer:
                referral = self.referral_program.record_referral(referrer.id, account)

        log_action(logger, "info", "Account registered",
                   user_id=account.id, action="register", resource="account",
                   extra={"account_number": account.account_number})

        if referral:
            self.referral_program.notify_new_referral(referral, account)

        return account

    # Lookup

    def get_account(self, account_id: str) -> Optional[Account]:
        account_dict = self.storage.load(self.accounts_table, account_id)
        if account_dict:
            return Account.from_dict(account_dict)
        return None

    def require_account(self, account_id: str) -> Account:
        """Get account by ID or raise NotFound"""
        account = self.get_account(account_id) if account_id else None
        if not account:
            raise NotFound(f"Account {account_id} not found")
        return account

    def _find_one(self, filters: Dict) -> Optional[Account]:
        found = self.storage.find(self.accounts_table, filters)
        if found:
            return Account.from_dict(found[0])
        return None

    def get_account_by_number(self, account_number: str) -> Optional[Account]:
        return self._find_one({"account_number": account_number})

    def get_account_by_email(self, email: str) -> Optional[Account]:
        return self._find_one({"email": email.strip().lower()})

    def get_account_by_referral_code(self, referral_code: str) -> Optional[Account]:
        return self._find_one({"referral_code": referral_code})

    def list_accounts(self, include_admins: bool = True) -> List[Account]:
        """All accounts, newest first"""
        accounts = [Account.from_dict(d) for d in self.storage.load_all(self.accounts_table)]
        if not include_admins:
            accounts = [a for a in accounts if not a.is_admin]
        accounts.sort(key=lambda a: a.created_at, reverse=True)
        return accounts

    def total_balance(self) -> Decimal:
        """Sum of all account balances"""
        return sum((a.balance for a in self.list_accounts()), ZERO)

    def _save_account(self, account: Account) -> None:
        self.storage.save(self.accounts_table, account.id, account.to_dict())

    def save_account(self, account: Account) -> None:
        """Persist an account mutated by the ledger or an approval workflow"""
        account.updated_at = datetime.now(timezone.utc)
        self._save_account(account)

    # Authorization

    def require_admin(self, ctx: RequestContext) -> Optional[Account]:
        """
        Re-check the caller's admin role against the persisted account.

        The transport-level ``ctx.is_admin`` flag is never trusted on its own.
        Internal system contexts pass without an account.
        """
        if ctx.is_system:
            return None
        account = self.get_account(ctx.account_id) if ctx.account_id else None
        if not account or not account.is_admin:
            log_action(logger, "warning", "Admin permission denied",
                       user_id=ctx.account_id, action="require_admin",
                       correlation_id=ctx.correlation_id)
            raise PermissionDenied("Admin access required")
        return account

    def require_self_or_admin(self, ctx: RequestContext, account_id: str) -> None:
        if ctx.account_id == account_id and not ctx.is_system:
            return
        self.require_admin(ctx)

    # Authentication

    def authenticate(self, email: str, password: str) -> Account:
        """
        Verify credentials and stamp last_login.

        Raises:
            AuthenticationError: Unknown email or wrong password
        """
        account = self.get_account_by_email(email or "")
        if not account or not self._verify_password(account, password or ""):
            self.audit_trail.log_event(
                event_type=AuditEventType.LOGIN_FAILED,
                entity_type="account",
                entity_id=account.id if account else "unknown",
                metadata={"email": email}
            )
            log_action(logger, "warning", "Login failed", action="login",
                       extra={"email": email})
            raise AuthenticationError("Invalid email or password")

        with self.locks.hold(account.id):
            account = self.require_account(account.id)
            account.last_login = datetime.now(timezone.utc)
            with self.storage.atomic():
                self.save_account(account)
                self.audit_trail.log_event(
                    event_type=AuditEventType.LOGIN_SUCCESS,
                    entity_type="account",
                    entity_id=account.id,
                    user_id=account.id
                )

        log_action(logger, "info", "Login succeeded", user_id=account.id, action="login")
        return account

    # Admin role

    def toggle_admin(self, ctx: RequestContext, target_id: str) -> Account:
        """Flip the admin role of target_id (admin only)"""
        self.require_admin(ctx)

        with self.locks.hold(target_id):
            target = self.require_account(target_id)
            target.is_admin = not target.is_admin
            with self.storage.atomic():
                self.save_account(target)
                self.audit_trail.log_event(
                    event_type=AuditEventType.ADMIN_TOGGLED,
                    entity_type="account",
                    entity_id=target.id,
                    metadata={"is_admin": target.is_admin},
                    user_id=ctx.account_id
                )

        log_action(logger, "info", "Admin role toggled",
                   user_id=ctx.account_id, action="toggle_admin", resource=target.id,
                   correlation_id=ctx.correlation_id,
                   extra={"is_admin": target.is_admin})
        return target

    def ensure_admin(self, email: str, name: str, password: str) -> Account:
        """
        Bootstrap an administrator.

        Creates the account when the email is unknown, otherwise promotes it and
        resets its password. Profile fields of a newly created admin are
        placeholders; admins are not subject to customer eligibility rules.
        """
        email = email.strip().lower()
        existing = self.get_account_by_email(email)
        salt = self._generate_salt()
        now = datetime.now(timezone.utc)

        with self.locks.hold(existing.id if existing else None), self.storage.atomic():
            if existing:
                account = self.require_account(existing.id)
                account.is_admin = True
                account.password_salt = salt
                account.password_hash = self._hash_password(password, salt)
                self.save_account(account)
            else:
                account = Account(
                    id=str(uuid.uuid4()),
                    created_at=now,
                    updated_at=now,
                    account_number=self._generate_account_number(),
                    name=name,
                    email=email,
                    password_hash=self._hash_password(password, salt),
                    password_salt=salt,
                    is_admin=True,
                    is_verified=True,
                    kyc_progress=100,
                    referral_code=self._generate_referral_code(name)
                )
                self._save_account(account)

            self.audit_trail.log_event(
                event_type=AuditEventType.ADMIN_TOGGLED,
                entity_type="account",
                entity_id=account.id,
                metadata={"is_admin": True, "bootstrap": True}
            )

        log_action(logger, "info", "Admin account ensured",
                   user_id=account.id, action="ensure_admin", resource="account")
        return account

    # Profile and settings

    def _clean_profile(self, changes: Dict) -> Dict:
        unknown = set(changes) - set(PROFILE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown profile fields: {', '.join(sorted(unknown))}")

        cleaned = {}
        for key, value in changes.items():
            if value is None:
                continue
            if key == 'date_of_birth':
                if isinstance(value, str):
                    try:
                        value = date.fromisoformat(value.strip())
                    except ValueError:
                        raise ValidationError("Invalid date of birth")
                if calculate_age(value) < self.config.minimum_age:
                    raise ValidationError(f"You must be at least {self.config.minimum_age} years old")
                cleaned[key] = value.isoformat()
                continue
            value = str(value).strip()
            if not value and key in REQUIRED_PROFILE_FIELDS:
                raise ValidationError(f"{key.replace('_', ' ').capitalize()} cannot be blank")
            cleaned[key] = value or (None if key == 'phone' else "")
        return cleaned

    def update_profile(self, ctx: RequestContext, account_id: str, **changes) -> Account:
        """
        Edit the customer-editable profile fields of an account.

        Only fields listed in PROFILE_FIELDS may change; None means "leave as
        is". Required fields cannot be blanked and a new date of birth must
        still meet the minimum age.

        Raises:
            ValidationError: Unknown field, blank required field or bad date
            PermissionDenied: Caller is neither the owner nor an admin
            NotFound: Unknown account
        """
        self.require_self_or_admin(ctx, account_id)
        cleaned = self._clean_profile(changes)

        with self.locks.hold(account_id):
            account = self.require_account(account_id)
            for key, value in cleaned.items():
                setattr(account, key, value)
            with self.storage.atomic():
                self.save_account(account)
                self.audit_trail.log_event(
                    event_type=AuditEventType.PROFILE_UPDATED,
                    entity_type="account",
                    entity_id=account.id,
                    metadata={"fields": sorted(cleaned)},
                    user_id=ctx.account_id
                )

        log_action(logger, "info", "Profile updated",
                   user_id=ctx.account_id, action="update_profile", resource=account.id,
                   correlation_id=ctx.correlation_id,
                   extra={"fields": sorted(cleaned)})
        return account

    def update_settings(self, ctx: RequestContext, account_id: str, **preferences) -> Account:
        """Set notification preferences and dark mode; values must be booleans"""
        self.require_self_or_admin(ctx, account_id)
        unknown = set(preferences) - set(SETTINGS_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown settings: {', '.join(sorted(unknown))}")
        for key, value in preferences.items():
            if not isinstance(value, bool):
                raise ValidationError(f"Setting {key} must be true or false")

        with self.locks.hold(account_id):
            account = self.require_account(account_id)
            for key, value in preferences.items():
                setattr(account, key, value)
            with self.storage.atomic():
                self.save_account(account)
                self.audit_trail.log_event(
                    event_type=AuditEventType.SETTINGS_UPDATED,
                    entity_type="account",
                    entity_id=account.id,
                    metadata=dict(preferences),
                    user_id=ctx.account_id
                )

        log_action(logger, "info", "Settings updated",
                   user_id=ctx.account_id, action="update_settings", resource=account.id,
                   correlation_id=ctx.correlation_id, extra=dict(preferences))
        return account

    @staticmethod
    def settings_dict(account: Account) -> Dict[str, bool]:
        return {key: getattr(account, key) for key in SETTINGS_FIELDS}
