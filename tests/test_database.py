import logging
from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from database import Base, StorageFailure, storage_guard
from models import Budget, Category, Transaction
from periods import MonthWindow
from services import BudgetService, TransactionService


def _engine():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return engine


def _food_budget(amount_cents: int) -> Budget:
    return Budget(category=Category.food, year=2024, month=3, amount_cents=amount_cents)


def test_storage_guard_wraps_integrity_error_and_rolls_back(caplog) -> None:
    with Session(_engine()) as session:
        session.add(_food_budget(8_000))
        session.commit()

        with caplog.at_level(logging.ERROR, logger="database"):
            with pytest.raises(StorageFailure) as excinfo:
                with storage_guard(session, "insert_budget"):
                    session.add(_food_budget(9_000))
                    session.commit()

        assert isinstance(excinfo.value.__cause__, IntegrityError)
        assert "storage_failure: action=insert_budget" in caplog.text
        assert len(session.new) == 0

        # session is usable again after the rollback
        budgets = BudgetService(session).find(MonthWindow.for_date(date(2024, 3, 1)))
        assert [b.amount_cents for b in budgets] == [8_000]


def test_service_read_failure_surfaces_as_storage_failure(monkeypatch) -> None:
    with Session(_engine()) as session:
        service = TransactionService(session)

        def broken_scalars(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(session, "scalars", broken_scalars)
        with pytest.raises(StorageFailure, match="find_transactions"):
            service.find()

        monkeypatch.undo()
        session.add(
            Transaction(amount_cents=100, date=date(2024, 3, 5), description="Tea")
        )
        session.commit()
        assert [txn.description for txn in service.find()] == ["Tea"]
