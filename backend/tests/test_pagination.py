import unittest

from backend.pagination import PageRequest, pagination_meta, unpaginated_meta


class PaginationTests(unittest.TestCase):
    def test_meta_for_middle_page(self) -> None:
        meta = pagination_meta(page=2, limit=10, total=35)

        self.assertEqual(meta.total_pages, 4)
        self.assertTrue(meta.has_next)
        self.assertTrue(meta.has_prev)

    def test_meta_for_last_and_empty_pages(self) -> None:
        last = pagination_meta(page=4, limit=10, total=35)
        empty = pagination_meta(page=1, limit=20, total=0)

        self.assertFalse(last.has_next)
        self.assertEqual(empty.total_pages, 0)
        self.assertFalse(empty.has_next)
        self.assertFalse(empty.has_prev)

    def test_unpaginated_meta_reports_single_page(self) -> None:
        meta = unpaginated_meta(7)

        self.assertEqual((meta.page, meta.limit, meta.total, meta.total_pages), (1, 7, 7, 1))
        self.assertFalse(meta.has_next)

    def test_offset(self) -> None:
        self.assertEqual(PageRequest(page=3, limit=20).offset, 40)

    def test_rejects_out_of_range_values(self) -> None:
        with self.assertRaises(ValueError):
            PageRequest(page=0)
        with self.assertRaises(ValueError):
            PageRequest(limit=0)
        with self.assertRaises(ValueError):
            PageRequest(limit=101)


if __name__ == "__main__":
    unittest.main()
