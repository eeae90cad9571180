"""
Parameter models, one per tool.

The voice platform sends an untyped parameter bag; it is validated against the
tool's model at the request boundary so handlers receive typed values.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ToolParams(BaseModel):
    # speech-to-text often yields numbers where we expect strings (check 1001, suffix 0001)
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True, str_strip_whitespace=True)


class MemberParams(ToolParams):
    member_id: str = Field(..., min_length=1, description="The authenticated member ID")


class AuthenticateMemberParams(ToolParams):
    pin: Optional[str] = Field(None, description="The member's 4-6 digit PIN")
    ssn_last_four: Optional[str] = Field(
        None, description="Last 4 digits of SSN (only if member not recognized by phone number)"
    )
    date_of_birth: Optional[str] = Field(
        None, description="Date of birth in YYYY-MM-DD format (only if member not recognized by phone number)"
    )


class GetAccountBalancesParams(MemberParams):
    pass


class GetAccountTransactionsParams(MemberParams):
    account_type: Optional[str] = Field(None, description="Type of account (checking, savings, loan, credit_card)")
    account_suffix: Optional[str] = Field(None, description="Account suffix (last 4 digits or identifier)")
    days_back: int = Field(30, ge=1, description="Number of days of history to retrieve (default 30)")


class TransferFundsParams(MemberParams):
    from_account_type: str = Field(..., description="Source account type")
    from_account_suffix: str = Field(..., description="Source account suffix")
    to_account_type: str = Field(..., description="Destination account type")
    to_account_suffix: str = Field(..., description="Destination account suffix")
    amount: float = Field(..., gt=0, description="Amount to transfer in dollars")


class ReportLostCardParams(MemberParams):
    card_type: str = Field(..., description="Type of card (debit, credit)")
    last_four: str = Field(..., description="Last 4 digits of the card number")
    reason: str = Field(..., description="Reason for replacement (lost, stolen, damaged)")


class GetRoutingInfoParams(MemberParams):
    account_type: str = Field(..., description="Account type (checking, savings)")
    account_suffix: str = Field(..., description="Account suffix")


class SetTravelNotificationParams(MemberParams):
    destination: str = Field(..., description="Travel destination (city, state, or country)")
    start_date: str = Field(..., description="Start date in YYYY-MM-DD format")
    end_date: str = Field(..., description="End date in YYYY-MM-DD format")


class CheckStatusInquiryParams(MemberParams):
    check_number: str = Field(..., description="Check number to inquire about")
    account_suffix: str = Field(..., description="Account suffix")
    account_type: Optional[str] = Field(None, description="Account type (must be checking)")


class StopPaymentParams(MemberParams):
    check_number: str = Field(..., description="Check number to stop")
    account_suffix: str = Field(..., description="Account suffix")
    amount: float = Field(..., gt=0, description="Check amount in dollars")


class FindAtmBranchParams(ToolParams):
    zip_code: str = Field(..., min_length=1, description="ZIP code for location search")
    location_type: Literal["atm", "branch", "both"] = Field(
        "both", description="Type of location to find (atm, branch, both)"
    )

    @field_validator("location_type", mode="before")
    @classmethod
    def _lower_location_type(cls, value):
        return value.strip().lower() if isinstance(value, str) else value


class RequestStatementParams(MemberParams):
    account_type: str = Field(..., description="Account type")
    account_suffix: str = Field(..., description="Account suffix")
    delivery_method: str = Field(..., description="How to deliver the statement (email, mail)")
    statement_period: Optional[str] = Field(
        None, description="Statement period (e.g., '2024-01' for January 2024)"
    )


class UpdateCreditLimitParams(MemberParams):
    card_last_four: str = Field(..., description="Last 4 digits of credit card")
    requested_limit: float = Field(..., gt=0, description="Requested new credit limit in dollars")


class VoiceBiometricEnrollmentParams(MemberParams):
    opt_in: bool = Field(..., description="Whether to opt in (true) or opt out (false)")
