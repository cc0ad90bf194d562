from decimal import Decimal
from pydantic import BaseModel, ConfigDict, Field, AliasChoices
from typing import Annotated, Literal, Optional

Amount = Annotated[Decimal, Field(gt=0, max_digits=14, decimal_places=2)]

class TransferTelemetry(BaseModel):
    """Optional device/location signals supplied by the mobile client"""
    model_config = ConfigDict(populate_by_name=True)

    location_delta_km: Optional[float] = None
    is_foreign_device: Optional[int] = None
    txns_last_24h: Optional[int] = None
    avg_amount_7d: Optional[float] = None

class AccountTransferRequest(TransferTelemetry):
    destination_account: str = Field(min_length=1, validation_alias=AliasChoices("destination_account", "to_account"))
    destination_bank_code: str = Field(min_length=1, validation_alias=AliasChoices("destination_bank_code", "ifsc"))
    beneficiary_name: Optional[str] = None
    amount: Amount
    authorization_proof: Optional[str] = Field(default=None, validation_alias=AliasChoices("authorization_proof", "otp"))

class UpiTransferRequest(TransferTelemetry):
    upi_id: str = Field(min_length=1, validation_alias=AliasChoices("upi_id", "upiId"))
    amount: Amount
    authorization_proof: Optional[str] = Field(default=None, validation_alias=AliasChoices("authorization_proof", "otp"))

class FraudReportRequest(BaseModel):
    account_number: str = Field(min_length=1, validation_alias=AliasChoices("account_number", "accountNumber"))
    bank_code: Optional[str] = Field(default=None, validation_alias=AliasChoices("bank_code", "ifsc"))
    reason: Optional[str] = None

class NotificationEvent(BaseModel):
    kind: Literal["DEBIT", "CREDIT", "FRAUD_FLAGGED", "FRAUD_BLOCKED", "OTP"]
    to: str
    body: str
    txn_id: Optional[str] = None
