from django.db import models

from .exceptions import ImmutableLogEntry
from .types import StockEventType


class StockItem(models.Model):
    """
    Current on-hand quantity of one sellable product.

    Only the ledger mutates `quantity`, and decrements always go through a
    conditional UPDATE (`WHERE quantity = <observed>`). The check constraint
    is the database's own guard against a negative value.
    """

    product_id = models.CharField(max_length=64, unique=True)
    name = models.CharField(max_length=255, blank=True)
    quantity = models.IntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gte=0),
                name="stock_ledger_quantity_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.product_id} ({self.quantity})"


class StockLogEntry(models.Model):
    """
    Append-only audit record of one stock mutation.

    `product_id` and `order_id` are loose references: the ledger owns neither
    products nor orders, it only records what happened to the quantity.
    """

    EventType = models.TextChoices(
        "EventType", [(e.name, e.value) for e in StockEventType]
    )

    product_id = models.CharField(max_length=64, db_index=True)
    order_id = models.CharField(max_length=64, null=True, blank=True, db_index=True)
    event_type = models.CharField(max_length=32, choices=EventType.choices)
    quantity_change = models.IntegerField()
    stock_before = models.IntegerField()
    stock_after = models.IntegerField()
    payment_id = models.CharField(max_length=255, null=True, blank=True)
    notes = models.TextField(blank=True, default="")
    created_by = models.CharField(max_length=64, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(
                    stock_after=models.F("stock_before") + models.F("quantity_change")
                ),
                name="stock_ledger_log_entry_adds_up",
            ),
        ]

    def __str__(self) -> str:
        return (
            f"{self.event_type} {self.product_id} "
            f"{self.stock_before}->{self.stock_after}"
        )

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ImmutableLogEntry(
                f"Stock log entry {self.pk} is append-only and cannot be updated"
            )
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableLogEntry(
            f"Stock log entry {self.pk} is append-only and cannot be deleted"
        )
