from typing import Optional

import structlog
from sqlalchemy.orm import Session

from checkout.errors import Forbidden, InvalidAddress
from checkout.models import Address
from checkout.schemas import AddressInput, ExistingAddress, InlineAddress

logger = structlog.get_logger(__name__)


class AddressBook:
    """The slice of address CRUD that checkout relies on."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, address_id: int) -> Optional[Address]:
        return self.db.get(Address, address_id)

    def create(self, owner_id: Optional[int], fields: InlineAddress, address_type: str = "shipping") -> Address:
        address = Address(
            user_id=owner_id,
            address_type=address_type,
            is_default=False,
            **fields.model_dump(),
        )
        self.db.add(address)
        self.db.flush()
        return address


class AddressResolver:
    def __init__(self, addresses: AddressBook):
        self.addresses = addresses

    def resolve(self, owner_id: Optional[int], address_input: AddressInput, address_type: str = "shipping") -> int:
        if isinstance(address_input, ExistingAddress):
            address = self.addresses.get(address_input.address_id)
            if address is None:
                raise InvalidAddress(f"Address with id={address_input.address_id} not found.")
            # Guest checkouts skip the ownership check
            if owner_id is not None and address.user_id != owner_id:
                logger.warning(
                    "Address ownership mismatch",
                    address_id=address.id,
                    owner_id=owner_id,
                )
                raise Forbidden(f"Invalid {address_type} address for this user.")
            return address.id

        if isinstance(address_input, InlineAddress):
            return self.addresses.create(owner_id, address_input, address_type).id

        raise InvalidAddress(f"Unsupported {address_type} address input.")
