"""Users and products: the local stand-ins for identity and catalog."""

from __future__ import annotations

from gavel.domain.models import Role
from gavel.infrastructure.db.repositories import ProductRepository, UserRepository
from gavel.infrastructure.db.repositories.products import DuplicateProductError
from gavel.infrastructure.db.repositories.users import DuplicateUserError
from gavel.infrastructure.observability import get_logger

from .dto import ProductDTO, UserDTO

_logger = get_logger(__name__)


class UserAlreadyExistsError(Exception):
    """Raised when attempting to create a user with a duplicate id."""


class ProductAlreadyExistsError(Exception):
    """Raised when attempting to create a product with a duplicate id."""


class UserService:
    def __init__(self, repository: UserRepository) -> None:
        self._repository = repository

    def list_users(self) -> list[UserDTO]:
        rows = self._repository.list()
        _logger.debug("Listed %d users", len(rows))
        return [
            UserDTO(id=str(row["id"]), role=str(row["role"]), name=row.get("name"))
            for row in rows
        ]

    def create_user(self, *, user_id: str, role: str, name: str | None = None) -> UserDTO:
        resolved = Role.from_string(role)
        try:
            self._repository.add(user_id, resolved, name)
        except DuplicateUserError as exc:
            _logger.warning("User already exists: %s", user_id)
            raise UserAlreadyExistsError(str(exc)) from exc
        _logger.info("User %s created with role %s", user_id, resolved.value)
        return UserDTO(id=user_id, role=resolved.value, name=name)


class ProductService:
    def __init__(self, repository: ProductRepository) -> None:
        self._repository = repository

    def list_products(self, *, seller_id: str | None = None) -> list[ProductDTO]:
        return [
            ProductDTO.from_record(record)
            for record in self._repository.list(seller_id=seller_id)
        ]

    def create_product(
        self, *, product_id: str, seller_id: str, stock: int = 1, name: str | None = None
    ) -> ProductDTO:
        try:
            self._repository.add(product_id, seller_id, stock, name)
        except DuplicateProductError as exc:
            _logger.warning("Product already exists: %s", product_id)
            raise ProductAlreadyExistsError(str(exc)) from exc
        _logger.info("Product %s created for seller %s (stock %d)", product_id, seller_id, stock)
        return ProductDTO(id=product_id, seller_id=seller_id, stock=stock, name=name)


__all__ = [
    "ProductAlreadyExistsError",
    "ProductService",
    "UserAlreadyExistsError",
    "UserService",
]
