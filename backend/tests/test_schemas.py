import unittest
from datetime import date
from decimal import Decimal

from backend.schemas import (
    BudgetCreatePayload,
    BudgetOwnerUpdatePayload,
    BudgetUpdatePayload,
    TransactionCreatePayload,
    TransactionUpdatePayload,
    UserCreatePayload,
    UserUpdatePayload,
    validate_amount,
)

OWNER_ID = "5b0c8a4e-3f5e-4c38-9a53-2f0d1e1b7c11"
CATEGORY_ID = "9d6f7a3c-1b2e-4f8a-8c4d-6e5f4a3b2c1d"


def budget(**overrides) -> BudgetCreatePayload:
    values = {"budget_owner_id": OWNER_ID, "year": 2024, "amount_planned": Decimal("1000")}
    values.update(overrides)
    return BudgetCreatePayload(**values)


def transaction(**overrides) -> TransactionCreatePayload:
    values = {
        "budget_owner_id": OWNER_ID,
        "category_id": CATEGORY_ID,
        "date": date(2024, 6, 1),
        "amount": Decimal("42.50"),
        "description": "Taxi",
    }
    values.update(overrides)
    return TransactionCreatePayload(**values)


class AmountTests(unittest.TestCase):
    def test_accepts_whole_and_cent_amounts(self) -> None:
        self.assertEqual(validate_amount(Decimal("0.01"), "Amount"), Decimal("0.01"))
        self.assertEqual(validate_amount(Decimal("12.50"), "Amount"), Decimal("12.50"))
        self.assertEqual(validate_amount(Decimal("7.500"), "Amount"), Decimal("7.500"))

    def test_rejects_zero_negative_and_missing(self) -> None:
        for value in (Decimal("0"), Decimal("-5"), None):
            with self.assertRaises(ValueError):
                validate_amount(value, "Amount")

    def test_rejects_sub_cent_precision(self) -> None:
        for value in (Decimal("0.001"), Decimal("0.004"), Decimal("10.005")):
            with self.assertRaises(ValueError):
                validate_amount(value, "Amount")

    def test_rejects_amount_beyond_column_precision(self) -> None:
        with self.assertRaises(ValueError):
            validate_amount(Decimal("10000000000000"), "Amount")


class BudgetPayloadTests(unittest.TestCase):
    def test_year_bounds(self) -> None:
        self.assertEqual(BudgetCreatePayload.validate_payload(budget(year=2000)).year, 2000)
        self.assertEqual(BudgetCreatePayload.validate_payload(budget(year=2100)).year, 2100)
        for year in (1999, 2101):
            with self.assertRaises(ValueError):
                BudgetCreatePayload.validate_payload(budget(year=year))

    def test_planned_and_revised_must_be_positive(self) -> None:
        for overrides in (
            {"amount_planned": Decimal("0")},
            {"amount_planned": Decimal("-1")},
            {"amount_revised": Decimal("0")},
            {"amount_planned": Decimal("0.001")},
            {"amount_revised": Decimal("0.009")},
        ):
            with self.assertRaises(ValueError):
                BudgetCreatePayload.validate_payload(budget(**overrides))

    def test_update_checks_sent_amounts_only(self) -> None:
        BudgetUpdatePayload.validate_payload(BudgetUpdatePayload(amount_revised=None))
        with self.assertRaises(ValueError):
            BudgetUpdatePayload.validate_payload(BudgetUpdatePayload(amount_planned=None))
        with self.assertRaises(ValueError):
            BudgetUpdatePayload.validate_payload(
                BudgetUpdatePayload(amount_planned=Decimal("0.001"))
            )
        with self.assertRaises(ValueError):
            BudgetUpdatePayload.validate_payload(BudgetUpdatePayload(amount_revised=Decimal("-3")))


class TransactionPayloadTests(unittest.TestCase):
    def test_valid_payload_is_trimmed(self) -> None:
        payload = TransactionCreatePayload.validate_payload(
            transaction(description="  Taxi  ", receipt_url="  ")
        )

        self.assertEqual(payload.description, "Taxi")
        self.assertIsNone(payload.receipt_url)

    def test_amount_and_description_invariants(self) -> None:
        for overrides in (
            {"amount": Decimal("0")},
            {"amount": Decimal("-10")},
            {"amount": Decimal("0.004")},
            {"description": "   "},
            {"receipt_url": "ftp://files/receipt.pdf"},
        ):
            with self.assertRaises(ValueError):
                TransactionCreatePayload.validate_payload(transaction(**overrides))

    def test_update_rejects_nulls_and_bad_amounts(self) -> None:
        for payload in (
            TransactionUpdatePayload(category_id=None),
            TransactionUpdatePayload(date=None),
            TransactionUpdatePayload(amount=Decimal("0.004")),
            TransactionUpdatePayload(description=""),
        ):
            with self.assertRaises(ValueError):
                TransactionUpdatePayload.validate_payload(payload)


class UserPayloadTests(unittest.TestCase):
    def test_role_and_status_are_normalized(self) -> None:
        payload = UserUpdatePayload.validate_payload(
            UserUpdatePayload(role="super_admin", status=" inactive ")
        )

        self.assertEqual(payload.role, "SUPER_ADMIN")
        self.assertEqual(payload.status, "INACTIVE")

    def test_invalid_role_status_email_and_password(self) -> None:
        with self.assertRaises(ValueError):
            UserUpdatePayload.validate_payload(UserUpdatePayload(role="OWNER"))
        with self.assertRaises(ValueError):
            UserUpdatePayload.validate_payload(UserUpdatePayload(status="DELETED"))
        with self.assertRaises(ValueError):
            BudgetOwnerUpdatePayload.validate_payload(BudgetOwnerUpdatePayload(status="GONE"))
        with self.assertRaises(ValueError):
            UserCreatePayload.validate_payload(
                UserCreatePayload(email="no-at-sign", name="A", password="longenough")
            )
        with self.assertRaises(ValueError):
            UserCreatePayload.validate_payload(
                UserCreatePayload(email="a@example.com", name="A", password="short")
            )


if __name__ == "__main__":
    unittest.main()
