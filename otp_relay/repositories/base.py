"""Product directory interface.

The directory is the read side of product, account, mapping, grant and TOTP
configuration storage. Administering that data happens elsewhere.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from otp_relay.models import (
    AccessGrant,
    AccountTarget,
    Product,
    TotpConfig,
)


class ProductDirectory(ABC):
    """Lookup operations the retrieval service needs."""

    @abstractmethod
    def get_product_by_slug(self, slug: str) -> Optional[Product]:
        """
        Get product by slug.

        Args:
            slug: Product slug

        Returns:
            Product or None if not found
        """
        pass

    @abstractmethod
    def get_access_grant(self, user_id: str, product_id: str) -> Optional[AccessGrant]:
        """
        Get a user's grant on a product.

        Args:
            user_id: User ID
            product_id: Product ID

        Returns:
            AccessGrant or None if the user has no grant
        """
        pass

    @abstractmethod
    def list_account_targets(self, product_id: str) -> List[AccountTarget]:
        """
        List active accounts mapped to a product.

        Inactive accounts and inactive mappings are excluded. The result is
        ordered by descending weight.

        Args:
            product_id: Product ID

        Returns:
            Ordered account targets
        """
        pass

    @abstractmethod
    def get_totp_config(self, product_id: str) -> Optional[TotpConfig]:
        """
        Get TOTP configuration for a product.

        Args:
            product_id: Product ID

        Returns:
            TotpConfig or None if the product has no secret
        """
        pass

    @abstractmethod
    def touch_account_last_used(self, account_id: str) -> None:
        """
        Record that an account just produced a code.

        Args:
            account_id: Account ID
        """
        pass
