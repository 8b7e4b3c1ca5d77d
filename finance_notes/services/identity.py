"""Binding a verified identity number to an account"""

import logging

from sqlalchemy.orm import Session

from finance_notes.domain.exceptions import ConflictError, NotFoundError
from finance_notes.domain.models import AccountContext, OtpIssue, OtpPurpose
from finance_notes.domain.validation import mask_identity, parse_uuid, validate_identity_number
from finance_notes.infrastructure.database.models import Account
from finance_notes.infrastructure.database.repositories import AccountRepository
from finance_notes.services.otp_gateway import OtpGateway


class IdentityVerifier:
    """Proves an account controls an identity number via an identity-verify OTP"""

    def __init__(self, db: Session, otp_gateway: OtpGateway):
        self.accounts = AccountRepository(db)
        self.otp_gateway = otp_gateway

    async def request_code(self, caller: AccountContext, identity_number: str) -> OtpIssue:
        identity = validate_identity_number(identity_number)
        issue = await self.otp_gateway.generate(identity, OtpPurpose.IDENTITY_VERIFY)
        logging.info(
            "Identity code requested",
            extra={"account_id": caller.account_id, "subject": mask_identity(identity)},
        )
        return issue

    async def confirm(self, caller: AccountContext, identity_number: str, code: str) -> Account:
        """
        Verify the code and attach the identity number to the caller's account.

        Raises:
            ConflictError: Another account already holds this identity number
            OtpError: Code rejected
        """
        identity = validate_identity_number(identity_number)
        account = self.accounts.get_by_id(parse_uuid(caller.account_id, "account_id"))
        if account is None:
            raise NotFoundError("Account not found")

        holder = self.accounts.lookup_by_identity_number(identity)
        if holder is not None and holder.id != account.id:
            raise ConflictError("Identity number is already registered to another account", "identity_number")

        await self.otp_gateway.verify(identity, OtpPurpose.IDENTITY_VERIFY, code)
        self.accounts.bind_identity(account, identity)
        logging.info(
            "Identity verified",
            extra={"account_id": str(account.id), "subject": mask_identity(identity)},
        )
        return account
