from cashback.models.account import CashbackRequestModel, PromoSettingsModel, UserModel  # noqa: F401
from cashback.models.product import ProductAliasModel, ProductModel, fold_name  # noqa: F401
from cashback.models.receipt import ReceiptModel  # noqa: F401
