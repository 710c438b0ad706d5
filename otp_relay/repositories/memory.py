"""In-memory product directory."""

import threading
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from loguru import logger

from otp_relay.models import (
    AccessGrant,
    Account,
    AccountTarget,
    Product,
    ProductAccountMapping,
    TotpConfig,
)

from .base import ProductDirectory


class InMemoryProductDirectory(ProductDirectory):
    """Thread-safe directory held in process memory."""

    def __init__(self, now: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        self._products: Dict[str, Product] = {}
        self._accounts: Dict[str, Account] = {}
        self._mappings: List[ProductAccountMapping] = []
        self._grants: Dict[Tuple[str, str], AccessGrant] = {}
        self._totp: Dict[str, TotpConfig] = {}
        self._lock = threading.RLock()
        self._now = now

    def add_product(self, product: Product) -> Product:
        with self._lock:
            self._products[product.id] = product
        return product

    def add_account(self, account: Account) -> Account:
        with self._lock:
            self._accounts[account.id] = account
        return account

    def add_mapping(self, mapping: ProductAccountMapping) -> ProductAccountMapping:
        with self._lock:
            self._mappings.append(mapping)
        return mapping

    def grant_access(self, grant: AccessGrant) -> AccessGrant:
        with self._lock:
            self._grants[(grant.user_id, grant.product_id)] = grant
        return grant

    def set_totp_config(self, product_id: str, config: TotpConfig) -> None:
        with self._lock:
            self._totp[product_id] = config

    def get_account(self, account_id: str) -> Optional[Account]:
        with self._lock:
            return self._accounts.get(account_id)

    def get_product_by_slug(self, slug: str) -> Optional[Product]:
        with self._lock:
            for product in self._products.values():
                if product.slug == slug:
                    return product
        return None

    def get_access_grant(self, user_id: str, product_id: str) -> Optional[AccessGrant]:
        with self._lock:
            return self._grants.get((user_id, product_id))

    def list_account_targets(self, product_id: str) -> List[AccountTarget]:
        with self._lock:
            targets = []
            for mapping in self._mappings:
                if mapping.product_id != product_id or not mapping.active:
                    continue
                account = self._accounts.get(mapping.account_id)
                if account is None or not account.active:
                    continue
                targets.append(AccountTarget(account=account, mapping=mapping))

        # Stable: equal weights keep insertion order
        return sorted(targets, key=lambda t: -t.weight)

    def get_totp_config(self, product_id: str) -> Optional[TotpConfig]:
        with self._lock:
            return self._totp.get(product_id)

    def touch_account_last_used(self, account_id: str) -> None:
        with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                logger.warning(f"Cannot update last_used_at: unknown account {account_id}")
                return
            account.last_used_at = self._now()
