"""
Alembic model import hook.

Importing this module ensures all SQLAlchemy models are registered on Base.metadata.
"""

from __future__ import annotations

# User first: every other table points at identity_user
from freelance_ledger.modules.identity.models import User  # noqa: F401

from freelance_ledger.modules.projects.models import Project  # noqa: F401
from freelance_ledger.modules.expenses.models import Expense, ExpenseCategory  # noqa: F401
from freelance_ledger.modules.incomes.models import Income  # noqa: F401
from freelance_ledger.modules.receipts.models import ParsingLog, Receipt  # noqa: F401
