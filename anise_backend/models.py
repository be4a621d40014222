"""
Data models for the Anise backend.

Receipts and decoded events are what the chain layer hands upward; the
request models are the explicit input structs of every mutating endpoint.
"""
from typing import Any, Dict, List, Literal, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from .exceptions import ValidationError
from .utils import normalize_address, normalize_tx_hash

M = TypeVar("M", bound=BaseModel)


class RawLog(BaseModel):
    """A log entry exactly as emitted in a receipt, hex encoded"""
    address: str
    topics: List[str] = Field(default_factory=list)
    data: str = "0x"
    log_index: int = Field(0, alias="logIndex")

    model_config = ConfigDict(populate_by_name=True)


class TxReceipt(BaseModel):
    """Transaction receipt from the blockchain"""
    tx_hash: str = Field(..., alias="transactionHash")
    block_number: int = Field(..., alias="blockNumber")
    block_hash: Optional[str] = Field(None, alias="blockHash")
    status: int
    gas_used: int = Field(0, alias="gasUsed")
    from_address: str = Field(..., alias="from")
    to_address: Optional[str] = Field(None, alias="to")
    logs: List[RawLog] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @property
    def success(self) -> bool:
        return self.status == 1


class DecodedEvent(BaseModel):
    """A log matched against a known event signature"""
    name: str
    signature: str
    args: Dict[str, Any]
    address: Optional[str] = None
    log_index: int = 0

    model_config = ConfigDict(frozen=True)

    @property
    def values(self) -> List[Any]:
        """Arguments in declaration order."""
        return list(self.args.values())

    def __getitem__(self, key):
        if isinstance(key, int):
            return self.values[key]
        return self.args[key]


class CallerIdentity(BaseModel):
    """Verified caller: identity-provider uid plus the linked wallet, if any"""
    uid: str
    wallet_address: Optional[str] = None
    profile: Dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------

class RequestModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", str_strip_whitespace=False)


class TxRequest(RequestModel):
    """Body carrying only a transaction hash (sign, delete, join, approve, reject)."""
    tx_hash: str = Field(..., alias="txHash")

    @field_validator("tx_hash", mode="before")
    @classmethod
    def _check_tx_hash(cls, value):
        try:
            return normalize_tx_hash(value)
        except ValidationError as e:
            raise ValueError(e.message)


class CreateDaoRequest(TxRequest):
    metadata: Dict[str, Any]
    modules: Dict[str, Any]
    creator_uid: Optional[str] = Field(None, alias="creatorUid")


class CreateProposalRequest(TxRequest):
    title: str = Field(..., min_length=1)
    description: str = ""


class CreateClaimRequest(TxRequest):
    title: str = Field(..., min_length=1)
    description: str = ""
    amount: int = Field(..., ge=0)

    @field_validator("amount", mode="before")
    @classmethod
    def _integer_amount(cls, value):
        # Amounts are wei-scale integers; floats would truncate them.
        if isinstance(value, float):
            raise ValueError("amount must be an integer, not a float")
        if isinstance(value, str):
            if not value.strip().isdigit():
                raise ValueError("amount must be a base-10 integer string")
            return int(value.strip())
        return value


class VoteRequest(TxRequest):
    vote_type: Literal["approve", "reject"] = Field(..., alias="voteType")


class CreateTaskRequest(TxRequest):
    title: str = Field(..., min_length=1)
    description: str = ""
    priority: int = Field(0, ge=0, le=3)
    due_date: int = Field(..., alias="dueDate", ge=0)


class UpdateTaskRequest(CreateTaskRequest):
    pass


class UpdateTaskStatusRequest(TxRequest):
    new_status: int = Field(..., alias="newStatus", ge=0, le=4)


class CreateEventRequest(TxRequest):
    title: str = Field(..., min_length=1)
    description: str = ""
    start_time: int = Field(..., alias="startTime", ge=0)
    end_time: int = Field(..., alias="endTime", ge=0)
    location: str = ""


class UpdateEventRequest(CreateEventRequest):
    pass


class CreateDocumentRequest(TxRequest):
    ipfs_hash: str = Field(..., alias="ipfsHash", min_length=1)
    title: str = Field(..., min_length=1)
    description: str = ""
    required_signers: List[str] = Field(default_factory=list, alias="requiredSigners")

    @field_validator("required_signers", mode="before")
    @classmethod
    def _check_signers(cls, value):
        if not isinstance(value, list):
            return value
        try:
            return [normalize_address(signer, "requiredSigners") for signer in value]
        except ValidationError as e:
            raise ValueError(e.message)


class CreateAnnouncementRequest(TxRequest):
    title: str = Field(..., min_length=1)
    content: str = ""
    announcement_type: int = Field(0, alias="announcementType", ge=0, le=2)
    expires_at: int = Field(..., alias="expiresAt", ge=0)


class UpdateAnnouncementRequest(CreateAnnouncementRequest):
    pass


class ConnectWalletRequest(RequestModel):
    address: str
    signature: str


class StartFlowRequest(RequestModel):
    name: Optional[str] = None
    email: Optional[str] = None


class ConfirmFlowRequest(RequestModel):
    redirect_flow_id: str = Field(..., min_length=1)
    session_token: str = Field(..., min_length=1)


class CreatePaymentRequest(RequestModel):
    amount: int = Field(..., gt=0)
    currency: str = Field(..., min_length=3, max_length=3)
    mandate_id: Optional[str] = None
    # Client retries must resend the same key; a fresh one is generated when absent
    idempotency_key: Optional[str] = Field(None, alias="idempotencyKey", min_length=1, max_length=128)


class CreateSubscriptionRequest(CreatePaymentRequest):
    interval_unit: Literal["weekly", "monthly", "yearly"] = "monthly"
    interval: int = Field(1, gt=0)
    name: Optional[str] = None


class UpdateSubscriptionRequest(RequestModel):
    subscription_id: str = Field(..., alias="subscriptionId", min_length=1)
    status: str = Field(..., min_length=1)


class Page(RequestModel):
    """Pagination parameters shared by list endpoints"""
    offset: int = Field(0, ge=0)
    limit: int = Field(20, gt=0, le=100)
    start_after: Optional[str] = Field(None, alias="startAfter")


def parse_request(model: Type[M], body: Any) -> M:
    """
    Validate a request body against its input model.

    Args:
        model: Request model class
        body: Decoded JSON body (any type)

    Returns:
        Validated model instance

    Raises:
        ValidationError: If the body is not an object or fails validation
    """
    if not isinstance(body, dict):
        raise ValidationError(f"Request body must be a JSON object, got {type(body).__name__}")
    try:
        return model.model_validate(body)
    except PydanticValidationError as e:
        errors = [
            {"field": ".".join(str(p) for p in err["loc"]), "error": err["msg"]}
            for err in e.errors()
        ]
        fields = ", ".join(err["field"] for err in errors)
        raise ValidationError(f"Invalid request fields: {fields}", errors)
