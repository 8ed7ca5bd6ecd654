"""Receipt and notification records for completed donations."""

import datetime as dt
import logging
from typing import Any

from ..models import Donation, DonationReceipt, Notification
from .dynamodb import DynamoDBService

logger = logging.getLogger(__name__)


def format_amount(amount: int, currency: str) -> str:
    """Render minor units as a display string, e.g. 50000 INR -> "INR 500.00"."""
    return f"{currency.upper()} {amount / 100:.2f}"


class ReceiptService:
    """Issues a receipt and an in-app notification for a donation.

    Both rows are keyed by the donation ID and written with
    attribute_not_exists, so a second call for the same donation is a no-op.
    """

    def __init__(self, db: DynamoDBService) -> None:
        self._db = db

    def issue_receipt(self, donation: Donation, target_name: str) -> DonationReceipt | None:
        """Write the receipt, flag the donation and notify the donor.

        Args:
            donation: The completed donation
            target_name: NGO or campaign name shown to the donor

        Returns:
            The receipt, or None if one was already issued for this donation
        """
        now = dt.datetime.now(dt.UTC)
        receipt = DonationReceipt(
            receipt_id=f"RCP-{donation.donation_id}",
            receipt_number=f"DCR-{int(now.timestamp() * 1000)}-{donation.donation_id[-6:]}",
            donor_id=donation.donor_id,
            donation_id=donation.donation_id,
            amount=donation.amount,
            currency=donation.currency,
            donation_type=donation.donation_type.value,
            target_name=target_name,
            generated_at=now,
        )

        item: dict[str, Any] = receipt.model_dump(mode="json")
        if not self._db.put_item(
            DynamoDBService.RECEIPTS_TABLE,
            item,
            condition_expression="attribute_not_exists(receipt_id)",
        ):
            logger.info("Receipt already issued for donation %s", donation.donation_id)
            return None

        self._db.update_item(
            DynamoDBService.DONATIONS_TABLE,
            {"donation_id": donation.donation_id},
            "SET tax_receipt_generated = :true, receipt_id = :receipt",
            {":true": True, ":receipt": receipt.receipt_id},
        )

        notification = Notification(
            notification_id=f"NTF-{donation.donation_id}",
            user_id=donation.donor_id,
            title="Thank you for your donation",
            message=(
                f"Your donation of {format_amount(donation.amount, donation.currency)} "
                f"to {target_name} was received. Receipt {receipt.receipt_number}."
            ),
            created_at=now,
        )
        self._db.put_item(
            DynamoDBService.NOTIFICATIONS_TABLE,
            notification.model_dump(mode="json"),
            condition_expression="attribute_not_exists(notification_id)",
        )

        logger.info(
            "Receipt %s issued for donation %s",
            receipt.receipt_number,
            donation.donation_id,
        )
        return receipt
