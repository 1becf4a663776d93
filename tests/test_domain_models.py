import unittest

from domain.errors import InvalidAmountError
from domain.models import TransferRequest, is_valid_account_id, parse_amount


class AccountIdTests(unittest.TestCase):
    def test_numeric_ids_are_valid(self):
        self.assertTrue(is_valid_account_id("5818937005"))
        self.assertTrue(is_valid_account_id("0"))

    def test_other_values_are_invalid(self):
        full_width = "\uff11\uff12\uff13"
        arabic_indic = "\u0661\u0662\u0663"
        for value in ("", " 12", "12a", "-3", "1.5", "123\n", full_width, arabic_indic, None, 123):
            with self.subTest(value=value):
                self.assertFalse(is_valid_account_id(value))


class ParseAmountTests(unittest.TestCase):
    def test_accepted_shapes(self):
        self.assertEqual(parse_amount(5), 5)
        self.assertEqual(parse_amount(-5), -5)
        self.assertEqual(parse_amount(5.0), 5)
        self.assertEqual(parse_amount("  12 "), 12)
        self.assertEqual(parse_amount("+7"), 7)

    def test_rejected_shapes(self):
        for value in (True, 2.5, "2.5", "ten", "", "-", "1e3", "\u0665\u0660", "\uff15\uff10", None, [1]):
            with self.subTest(value=value):
                with self.assertRaises(InvalidAmountError):
                    parse_amount(value)


class TransferRequestTests(unittest.TestCase):
    def test_is_immutable(self):
        request = TransferRequest(sender="1", recipient="2", amount=3)

        with self.assertRaises(AttributeError):
            request.amount = 4


if __name__ == "__main__":
    unittest.main()
