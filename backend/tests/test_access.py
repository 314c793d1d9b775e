import unittest

from backend.access import (
    SUPER_ADMIN,
    USER,
    Principal,
    can_modify_transaction,
    can_view_budget_owner,
    require_super_admin,
)
from backend.errors import ForbiddenError


class AccessRuleTests(unittest.TestCase):
    def setUp(self) -> None:
        self.admin = Principal(user_id="admin-1", role=SUPER_ADMIN)
        self.user = Principal(user_id="user-1", role=USER)

    def test_super_admin_sees_every_budget_owner(self) -> None:
        self.assertTrue(can_view_budget_owner(self.admin, "owner-9", set()))

    def test_user_sees_only_granted_budget_owners(self) -> None:
        accessible = {"owner-1", "owner-2"}

        self.assertTrue(can_view_budget_owner(self.user, "owner-1", accessible))
        self.assertFalse(can_view_budget_owner(self.user, "owner-3", accessible))
        self.assertFalse(can_view_budget_owner(self.user, "owner-1", set()))

    def test_creator_can_modify_own_transaction(self) -> None:
        self.assertTrue(can_modify_transaction(self.user, "user-1"))
        self.assertFalse(can_modify_transaction(self.user, "user-2"))

    def test_super_admin_can_modify_any_transaction(self) -> None:
        self.assertTrue(can_modify_transaction(self.admin, "user-2"))

    def test_require_super_admin(self) -> None:
        require_super_admin(self.admin)
        with self.assertRaises(ForbiddenError) as ctx:
            require_super_admin(self.user)
        self.assertEqual(ctx.exception.status_code, 403)


if __name__ == "__main__":
    unittest.main()
