import unittest

from application.services import (
    BalanceQueryResult,
    ErrorCode,
    OperationResult,
    TransferResult,
    TransferStage,
    TransferStatus,
)
from interfaces.messages import (
    render_balance_result,
    render_help,
    render_register_result,
    render_transfer_result,
    render_unregister_result,
)


class RenderTransferResultTests(unittest.TestCase):
    def test_success(self):
        text = render_transfer_result(
            TransferResult(
                status=TransferStatus.SUCCESS,
                sender="1",
                recipient="2",
                amount=200,
                stage=TransferStage.COMMITTED,
                sender_new_balance=300,
                recipient_new_balance=200,
            )
        )

        self.assertIn("Payment successful", text)
        self.assertIn("Your new balance: 300", text)

    def test_not_registered_points_to_register_command(self):
        text = render_transfer_result(
            TransferResult(status=TransferStatus.REJECTED, reason=ErrorCode.NOT_REGISTERED),
            prefix="/",
        )

        self.assertIn("/register", text)

    def test_insufficient_funds_shows_shortfall(self):
        text = render_transfer_result(
            TransferResult(
                status=TransferStatus.REJECTED,
                reason=ErrorCode.INSUFFICIENT_FUNDS,
                amount=150,
                available=100,
                shortfall=50,
            )
        )

        self.assertIn("Balance: 100", text)
        self.assertIn("Short by: 50", text)

    def test_partial_failure_asks_for_an_administrator(self):
        text = render_transfer_result(
            TransferResult(
                status=TransferStatus.FAILED,
                sender="1",
                recipient="2",
                amount=200,
                reason=ErrorCode.PARTIAL_FAILURE,
                stage=TransferStage.CREDITING,
                compensated=False,
            )
        )

        self.assertIn("could NOT be reversed", text)
        self.assertIn("Stage reached: crediting", text)
        self.assertIn("contact an administrator", text)

    def test_store_outage_is_retryable(self):
        text = render_transfer_result(
            TransferResult(
                status=TransferStatus.FAILED,
                reason=ErrorCode.STORE_UNAVAILABLE,
                stage=TransferStage.VALIDATING,
                error_message="connection refused",
            )
        )

        self.assertIn("unavailable", text)
        self.assertIn("!bal", text)

    def test_other_rejections_use_the_error_message(self):
        text = render_transfer_result(
            TransferResult(
                status=TransferStatus.REJECTED,
                reason=ErrorCode.SELF_TRANSFER,
                error_message="You cannot send money to your own account.",
            )
        )

        self.assertEqual(text, "You cannot send money to your own account.")


class RenderOtherResultsTests(unittest.TestCase):
    def test_zero_balance_mentions_provisioning(self):
        text = render_balance_result(BalanceQueryResult(success=True, account_id="5", balance=0))

        self.assertIn("Balance: 0", text)
        self.assertIn("contact an admin", text)

    def test_positive_balance(self):
        text = render_balance_result(BalanceQueryResult(success=True, account_id="5", balance=12))

        self.assertEqual(text, "Account ID: 5\nBalance: 12")

    def test_register_invalid_id(self):
        text = render_register_result(
            OperationResult(success=False, reason=ErrorCode.INVALID_ACCOUNT)
        )

        self.assertIn("only numbers", text)

    def test_unregister_success_points_back_to_register(self):
        text = render_unregister_result(OperationResult(success=True, account_id="100"), "/")

        self.assertIn("100", text)
        self.assertIn("/register", text)

    def test_unregister_without_link(self):
        text = render_unregister_result(
            OperationResult(success=False, reason=ErrorCode.NOT_REGISTERED)
        )

        self.assertIn("not registered", text)

    def test_help_lists_unregister(self):
        self.assertIn("!unregister", render_help())


if __name__ == "__main__":
    unittest.main()
