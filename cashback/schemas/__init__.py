from cashback.schemas.account import (  # noqa: F401
    BalanceResponse,
    CashbackRequestCreate,
    CashbackRequestRead,
    CashbackRequestUpdate,
    ReconcileResponse,
)
from cashback.schemas.catalog import (  # noqa: F401
    AliasDecisionRequest,
    AliasDecisionResponse,
    FailedReceipt,
    ProductAliasRead,
    ProductRead,
)
from cashback.schemas.enums import (  # noqa: F401
    BALANCE_RECEIPT_STATUSES,
    REJECTED_ITEM_STATUSES,
    VERIFIED_ITEM_STATUSES,
    AliasStatus,
    CashbackRequestStatus,
    ItemStatus,
    ReceiptStatus,
    UserRole,
)
from cashback.schemas.receipt import (  # noqa: F401
    CashbackItem,
    ItemProps,
    ParsedLineItem,
    ParsedReceipt,
    ProductClaim,
    ReceiptItem,
    ReceiptListMeta,
    ReceiptListResponse,
    ReceiptRead,
    SubmitReceiptRequest,
    SubmitReceiptResponse,
    dump_items,
    load_items,
)
