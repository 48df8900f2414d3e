#!/usr/bin/env python3
"""
Create or promote the bootstrap administrator.

Uses SAXON_ADMIN_EMAIL, SAXON_ADMIN_NAME and SAXON_ADMIN_PASSWORD; the
password may also be given as the first argument.
"""

import sys

from saxon_bank.config import get_config
from saxon_bank.logging_config import setup_logging
from saxon_bank.system import BankingSystem


def main(argv) -> int:
    config = get_config()
    setup_logging(config.log_level, log_format=config.log_format)

    password = argv[1] if len(argv) > 1 else config.admin_password
    if not password:
        print("❌ No admin password: set SAXON_ADMIN_PASSWORD or pass it as an argument")
        return 1

    system = BankingSystem(config)
    try:
        admin = system.account_manager.ensure_admin(config.admin_email, config.admin_name, password)
    finally:
        system.close()

    print("✅ Admin user ready")
    print(f"   Email: {admin.email}")
    print(f"   Account number: {admin.account_number}")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))
