import logging
from typing import Optional, Tuple

from backend.ledger.models import Category, SubCategory, KIND_CHOICES, STATUS_CHOICES, STATUS_ACTIVE
from backend.ledger.repos import ConflictError, DjangoCategoriesRepo, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

KINDS = [k for k, _ in KIND_CHOICES]
STATUSES = [s for s, _ in STATUS_CHOICES]


class CategoryService:
    def __init__(self, repository: Optional[DjangoCategoriesRepo] = None):
        self.repository = repository or DjangoCategoriesRepo()

    def create_category(self, name, budget_code, kind, is_mixed=False, status=STATUS_ACTIVE) -> Category:
        name = (name or "").strip()
        budget_code = (budget_code or "").strip()
        if not name:
            raise ValidationError("Category name is required")
        if not budget_code:
            raise ValidationError("Budget code is required")
        if kind not in KINDS:
            raise ValidationError(f"Invalid category kind: {kind}")
        if status not in STATUSES:
            raise ValidationError(f"Invalid status: {status}")
        if self.repository.get_by_name(name):
            raise ConflictError(f"Category '{name}' already exists")
        if self.repository.get_by_budget_code(budget_code):
            raise ConflictError(f"Budget code '{budget_code}' already exists")

        category = self.repository.create(
            name=name, budget_code=budget_code, kind=kind, is_mixed=bool(is_mixed), status=status
        )
        logger.info("Category %s created: %s %s (%s)", category.pk, budget_code, name, kind)
        return category

    def create_sub_category(self, category_id, name) -> SubCategory:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Sub-category name is required")
        category = self.get_category(category_id)
        if self.repository.get_sub_category_by_name(category, name):
            raise ConflictError(f"Sub-category '{name}' already exists in '{category.name}'")
        sub_category = self.repository.create_sub_category(category, name)
        logger.info("Sub-category %s created under %s: %s", sub_category.pk, category.name, name)
        return sub_category

    def get_category(self, category_id) -> Category:
        category = self.repository.get(category_id)
        if category is None:
            raise NotFoundError("Category", category_id)
        return category

    def list_categories(self, kind=None, status=None):
        return self.repository.list(kind=kind, status=status)

    def list_sub_categories(self, category_id=None):
        return self.repository.list_sub_categories(category_id)

    def ensure_category(self, budget_code, name, kind, sub_category_name) -> Tuple[Category, SubCategory]:
        """Fetch a system category / sub-category pair by budget code, creating it when absent."""
        category = self.repository.get_by_budget_code(budget_code)
        if category is None:
            category = self.repository.create(name=name, budget_code=budget_code, kind=kind)
        sub_category = self.repository.get_sub_category_by_name(category, sub_category_name)
        if sub_category is None:
            sub_category = self.repository.create_sub_category(category, sub_category_name)
        return category, sub_category
